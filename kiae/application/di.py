from dishka import AsyncContainer, Provider, Scope, from_context, make_async_container, provide

from kiae.application.engine import AvailabilityEngine
from kiae.application.runtime import ExporterRuntime
from kiae.config import Config
from kiae.domain.credential.port.identity import IdentityState
from kiae.domain.credential.service.resolver import CredentialResolver
from kiae.domain.image.port.checker import ImageChecker
from kiae.domain.image.service.store import ImageStore
from kiae.domain.workload.service.indexer import WorkloadIndexer
from kiae.infrastructure.kubernetes.di import KubernetesProvider
from kiae.infrastructure.kubernetes.source import KubernetesSource
from kiae.infrastructure.metrics.di import MetricsProvider
from kiae.infrastructure.registry.di import RegistryProvider


class EngineProvider(Provider):
    """Indexer, store, resolver, and the engine that composes them."""

    config = from_context(provides=Config, scope=Scope.APP)

    indexer = provide(WorkloadIndexer, scope=Scope.APP)

    @provide(scope=Scope.APP)
    def get_resolver(self, indexer: WorkloadIndexer, identity: IdentityState) -> CredentialResolver:
        return CredentialResolver(indexer=indexer, identity=identity)

    @provide(scope=Scope.APP)
    def get_store(self, checker: ImageChecker, config: Config) -> ImageStore:
        return ImageStore(
            checker=checker,
            batch_size=config.check.batch_size,
            failed_batch_size=config.check.failed_batch_size,
            concurrency=config.check.concurrency,
        )

    @provide(scope=Scope.APP)
    def get_engine(
        self, indexer: WorkloadIndexer, store: ImageStore, config: Config
    ) -> AvailabilityEngine:
        return AvailabilityEngine(
            indexer=indexer,
            store=store,
            ignored_images=config.ignored_image_patterns,
            force_check_kinds=config.force_check_kinds,
        )

    @provide(scope=Scope.APP)
    def get_runtime(
        self, engine: AvailabilityEngine, source: KubernetesSource, config: Config
    ) -> ExporterRuntime:
        return ExporterRuntime(
            engine=engine,
            source=source,
            check_interval=config.check.interval,
            gc_interval=config.gc.interval,
        )


def create_container(config: Config | None = None) -> AsyncContainer:
    # Pydantic Settings populates from env vars at runtime
    config = config or Config()  # type: ignore[call-arg]

    return make_async_container(
        EngineProvider(),
        RegistryProvider(),
        KubernetesProvider(),
        MetricsProvider(),
        context={Config: config},
    )
