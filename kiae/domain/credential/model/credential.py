"""Registry credential models and docker config parsing."""

import base64
import json
import logging
from typing import Any

from kiae.domain.shared.model.value import ValueObject

logger = logging.getLogger(__name__)

DOCKER_HUB = "index.docker.io"

# Keys under which Docker Hub credentials show up in docker config files.
_DOCKER_HUB_ALIASES = frozenset(
    {"docker.io", "index.docker.io", "registry-1.docker.io", "registry.hub.docker.com"}
)


def normalize_registry(key: str) -> str:
    """Reduce a docker config key ("https://host:5000/v1/") to its host."""
    host = key.strip()
    if "://" in host:
        host = host.split("://", 1)[1]
    host = host.split("/", 1)[0].lower()
    if host in _DOCKER_HUB_ALIASES:
        return DOCKER_HUB
    return host


class RegistryCredential(ValueObject):
    """One set of credentials for one registry host."""

    registry: str
    username: str | None = None
    password: str | None = None
    identity_token: str | None = None  # OAuth2 refresh token
    registry_token: str | None = None  # bearer token used as-is

    @property
    def has_basic(self) -> bool:
        return self.username is not None and self.password is not None


class Keychain(ValueObject):
    """Ordered credential sources tried in sequence for a registry.

    Resolved per check from cluster identity state and never persisted on the
    image record. An empty keychain means ambient credentials only.
    """

    credentials: tuple[RegistryCredential, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.credentials

    def for_registry(self, registry: str) -> list[RegistryCredential]:
        host = normalize_registry(registry)
        return [c for c in self.credentials if c.registry == host]

    def merge(self, *others: "Keychain") -> "Keychain":
        """Concatenate keychains, keeping the first occurrence of duplicates."""
        seen: list[RegistryCredential] = []
        for keychain in (self, *others):
            for credential in keychain.credentials:
                if credential not in seen:
                    seen.append(credential)
        return Keychain(credentials=tuple(seen))


_STRING_FIELDS = ("auth", "username", "password", "identitytoken", "registrytoken")


def _decode_auth(value: str) -> tuple[str, str] | None:
    try:
        decoded = base64.b64decode(value).decode("utf-8")
    except ValueError:
        return None
    if ":" not in decoded:
        return None
    username, password = decoded.split(":", 1)
    return username, password


def _credential(key: str, entry: dict[str, Any]) -> RegistryCredential | None:
    for name in _STRING_FIELDS:
        if entry.get(name) is not None and not isinstance(entry[name], str):
            raise ValueError(f"{name} for registry {key} must be a string")
    username = entry.get("username")
    password = entry.get("password")
    if entry.get("auth"):
        pair = _decode_auth(entry["auth"])
        if pair is None:
            logger.warning("Ignoring undecodable auth entry for registry %s", key)
        else:
            username, password = pair
    credential = RegistryCredential(
        registry=normalize_registry(key),
        username=username or None,
        password=password or None,
        identity_token=entry.get("identitytoken") or None,
        registry_token=entry.get("registrytoken") or None,
    )
    if not (credential.has_basic or credential.identity_token or credential.registry_token):
        return None
    return credential


def parse_docker_config(data: dict[str, Any] | str | bytes) -> Keychain:
    """Parse a ``config.json``/``.dockerconfigjson`` or legacy ``.dockercfg`` document.

    Entries without usable credentials are skipped (credential helpers are
    not supported).

    Raises:
        ValueError: The document is not JSON or its entries have the wrong shape.
    """
    if isinstance(data, (str, bytes)):
        data = json.loads(data)
    if not isinstance(data, dict):
        raise ValueError("docker config must be a JSON object")

    # .dockerconfigjson nests entries under "auths"; legacy .dockercfg does not
    if "auths" in data:
        entries = data["auths"] or {}
    elif "credHelpers" in data or "credsStore" in data:
        entries = {}
    else:
        entries = data
    if not isinstance(entries, dict):
        raise ValueError("docker config auths must be a JSON object")
    credentials: list[RegistryCredential] = []
    for key, entry in entries.items():
        if not isinstance(entry, dict):
            continue
        credential = _credential(key, entry)
        if credential is not None:
            credentials.append(credential)
    return Keychain(credentials=tuple(credentials))
