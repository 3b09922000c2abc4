"""Shared registry transport: one httpx.AsyncClient for every probe."""

import logging
import ssl

import httpx

from kiae.config import RegistryConfig
from kiae.domain.shared.error import ConfigurationError

logger = logging.getLogger(__name__)

# Per-request ceiling; the probe enforces its own per-attempt deadline on top.
_REGISTRY_TIMEOUT = httpx.Timeout(
    connect=5.0,
    read=15.0,
    write=5.0,
    pool=5.0,
)

_REGISTRY_LIMITS = httpx.Limits(max_connections=100, max_keepalive_connections=20)


def build_ssl_context(config: RegistryConfig) -> ssl.SSLContext | bool:
    """TLS verification settings for registry connections.

    Raises:
        ConfigurationError: If a CA bundle cannot be read or parsed.
    """
    if config.skip_tls_verify:
        logger.warning("TLS certificate verification for registries is disabled")
        return False
    if not config.ca_paths:
        return True

    context = ssl.create_default_context()
    for ca_path in config.ca_paths:
        try:
            context.load_verify_locations(cafile=ca_path)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Failed to open CA bundle {ca_path!r}: {e}") from e
        except ssl.SSLError as e:
            raise ConfigurationError(
                f"Error parsing {ca_path!r} content as a PEM encoded certificate: {e}"
            ) from e
    return context


def build_registry_client(config: RegistryConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        verify=build_ssl_context(config),
        timeout=_REGISTRY_TIMEOUT,
        limits=_REGISTRY_LIMITS,
        follow_redirects=True,
    )
