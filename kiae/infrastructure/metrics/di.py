"""DI provider for metric exposition."""

from dishka import Provider, Scope, provide
from prometheus_client import CollectorRegistry

from kiae.application.engine import AvailabilityEngine
from kiae.infrastructure.metrics.collector import AvailabilityCollector


class MetricsProvider(Provider):
    @provide(scope=Scope.APP)
    def get_registry(self, engine: AvailabilityEngine) -> CollectorRegistry:
        registry = CollectorRegistry(auto_describe=False)
        registry.register(AvailabilityCollector(engine.collect))
        return registry
