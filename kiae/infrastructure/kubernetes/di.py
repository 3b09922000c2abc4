"""DI provider for the Kubernetes cluster source."""

from typing import Iterable

from dishka import Provider, Scope, provide
from kubernetes import client

from kiae.application.engine import AvailabilityEngine
from kiae.config import Config
from kiae.domain.credential.port.identity import IdentityState
from kiae.infrastructure.kubernetes.identity import IdentityCache
from kiae.infrastructure.kubernetes.source import KubernetesSource, build_api_client


class KubernetesProvider(Provider):
    @provide(scope=Scope.APP)
    def get_api_client(self, config: Config) -> Iterable[client.ApiClient]:
        api_client = build_api_client(config.kubernetes)
        yield api_client
        api_client.close()

    identity_cache = provide(IdentityCache, scope=Scope.APP)

    @provide(scope=Scope.APP)
    def get_identity_state(self, cache: IdentityCache) -> IdentityState:
        return cache

    @provide(scope=Scope.APP)
    def get_source(
        self,
        api_client: client.ApiClient,
        cache: IdentityCache,
        engine: AvailabilityEngine,
        config: Config,
    ) -> KubernetesSource:
        return KubernetesSource(
            api_client=api_client,
            identity=cache,
            handler=engine.on_workload_changed,
            namespace_label=config.namespace_label,
            resync_period=config.kubernetes.resync_period,
        )
