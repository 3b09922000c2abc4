"""ImageChecker adapter: resolve credentials, then probe the registry."""

from kiae.domain.credential.service.resolver import CredentialResolver
from kiae.domain.image.model.value import AvailabilityMode
from kiae.domain.image.port.checker import ImageChecker
from kiae.infrastructure.registry.probe import RegistryProbe


class RegistryImageChecker(ImageChecker):
    def __init__(self, resolver: CredentialResolver, probe: RegistryProbe) -> None:
        self._resolver = resolver
        self._probe = probe

    async def check(self, image: str) -> AvailabilityMode:
        keychain = self._resolver.keychain_for(image)
        result = await self._probe.probe(image, keychain)
        return result.mode
