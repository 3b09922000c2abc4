"""In-memory identity state fed by the cluster source."""

import base64
import binascii
import logging
import threading
from typing import Any

from kiae.domain.credential.model.credential import Keychain, parse_docker_config
from kiae.domain.credential.port.identity import IdentityState

logger = logging.getLogger(__name__)

DOCKER_CONFIG_JSON = "kubernetes.io/dockerconfigjson"
DOCKER_CFG = "kubernetes.io/dockercfg"

_SECRET_KEYS = {
    DOCKER_CONFIG_JSON: ".dockerconfigjson",
    DOCKER_CFG: ".dockercfg",
}

ObjectKey = tuple[str, str]  # (namespace, name)


def secret_keychain(secret: Any) -> Keychain | None:
    """Parse a docker-config Secret; None for other types or broken payloads."""
    key = _SECRET_KEYS.get(secret.type)
    payload = (secret.data or {}).get(key) if key else None
    if not payload:
        return None
    try:
        return parse_docker_config(base64.b64decode(payload))
    except (binascii.Error, ValueError) as e:
        logger.warning(
            "Ignoring malformed pull secret %s/%s: %s",
            secret.metadata.namespace,
            secret.metadata.name,
            e,
        )
        return None


def service_account_pull_secrets(service_account: Any) -> tuple[str, ...]:
    return tuple(s.name for s in service_account.image_pull_secrets or [] if s.name)


class IdentityCache(IdentityState):
    """Latest service-account and pull-secret state, swapped atomically per resync."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._service_accounts: dict[ObjectKey, tuple[str, ...]] = {}
        self._secrets: dict[ObjectKey, Keychain] = {}

    def replace(
        self,
        service_accounts: dict[ObjectKey, tuple[str, ...]],
        secrets: dict[ObjectKey, Keychain],
    ) -> None:
        with self._lock:
            self._service_accounts = dict(service_accounts)
            self._secrets = dict(secrets)

    def service_account_pull_secrets(self, namespace: str, name: str) -> tuple[str, ...]:
        with self._lock:
            return self._service_accounts.get((namespace, name), ())

    def pull_secret(self, namespace: str, name: str) -> Keychain | None:
        with self._lock:
            return self._secrets.get((namespace, name))
