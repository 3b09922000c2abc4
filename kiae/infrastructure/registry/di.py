"""DI provider for registry infrastructure."""

from typing import AsyncIterable

import httpx
from dishka import Provider, Scope, provide

from kiae.config import Config
from kiae.domain.credential.service.resolver import CredentialResolver
from kiae.domain.image.port.checker import ImageChecker
from kiae.infrastructure.registry.checker import RegistryImageChecker
from kiae.infrastructure.registry.client import RegistryClient
from kiae.infrastructure.registry.probe import RegistryProbe
from kiae.infrastructure.registry.transport import build_registry_client


class RegistryProvider(Provider):
    @provide(scope=Scope.APP)
    async def get_http_client(self, config: Config) -> AsyncIterable[httpx.AsyncClient]:
        """Shared transport for every registry probe."""
        client = build_registry_client(config.registry)
        yield client
        await client.aclose()

    @provide(scope=Scope.APP)
    def get_registry_client(self, client: httpx.AsyncClient) -> RegistryClient:
        return RegistryClient(client=client)

    @provide(scope=Scope.APP)
    def get_probe(self, client: RegistryClient, config: Config) -> RegistryProbe:
        return RegistryProbe(
            client=client,
            default_registry=config.registry.default_registry,
            plain_http=config.registry.plain_http,
        )

    @provide(scope=Scope.APP, provides=ImageChecker)
    def get_checker(self, resolver: CredentialResolver, probe: RegistryProbe) -> RegistryImageChecker:
        return RegistryImageChecker(resolver=resolver, probe=probe)
