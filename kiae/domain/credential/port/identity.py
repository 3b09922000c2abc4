"""IdentityState port - cached namespace, service account, and secret state."""

from typing import Protocol

from kiae.domain.credential.model.credential import Keychain


class IdentityState(Protocol):
    """Synchronously queryable snapshot of cluster identity objects.

    Kept warm by the cluster source; lookups never touch the network.
    """

    def service_account_pull_secrets(self, namespace: str, name: str) -> tuple[str, ...]:
        """Names of the image pull secrets linked to a service account."""
        ...

    def pull_secret(self, namespace: str, name: str) -> Keychain | None:
        """Parsed credentials of a docker-config secret, None if unknown."""
        ...
