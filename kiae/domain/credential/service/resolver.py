"""CredentialResolver - maps an image to the keychain its workloads would pull with."""

import logging

from kiae.domain.credential.model.credential import Keychain
from kiae.domain.credential.port.identity import IdentityState
from kiae.domain.shared.service import Service
from kiae.domain.workload.service.indexer import WorkloadIndexer

logger = logging.getLogger(__name__)


class CredentialResolver(Service):
    """Resolves pull credentials for an image from cached identity state.

    For every workload referencing the image, the pod template's own image
    pull secrets come first, then those linked to its service account.
    Results are unioned in that order across workloads (sorted by identity so
    the keychain is stable between checks).
    """

    indexer: WorkloadIndexer
    identity: IdentityState

    def keychain_for(self, image: str) -> Keychain:
        keychain = Keychain()
        workloads = self.indexer.workloads_referencing(image)
        for identity in sorted(workloads, key=str):
            spec = workloads[identity]
            names = list(spec.pull_secrets)
            names.extend(
                self.identity.service_account_pull_secrets(identity.namespace, spec.service_account)
            )
            for name in dict.fromkeys(names):
                secret = self.identity.pull_secret(identity.namespace, name)
                if secret is None:
                    logger.debug("Pull secret %s/%s not found", identity.namespace, name)
                    continue
                keychain = keychain.merge(secret)
        return keychain
