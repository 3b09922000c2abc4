"""Prometheus exposition of image availability samples."""

from collections.abc import Callable, Iterator

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from kiae.domain.image.model.value import AvailabilityMode, ImageSample

METRIC_PREFIX = "k8s_image_availability_exporter"
LABELS = ("namespace", "container", "image", "kind", "name")

_HELP = {
    AvailabilityMode.UNKNOWN: "image has not been checked yet",
    AvailabilityMode.AVAILABLE: "image is available in the registry",
    AvailabilityMode.ABSENT: "image is absent from the registry",
    AvailabilityMode.AUTHN_FAILURE: "registry rejected the credentials",
    AvailabilityMode.AUTHZ_FAILURE: "credentials are not allowed to pull the image",
    AvailabilityMode.BAD_IMAGE_NAME: "image reference is malformed",
    AvailabilityMode.UNKNOWN_ERROR: "registry check failed for another reason",
}


def metric_name(mode: AvailabilityMode) -> str:
    return f"{METRIC_PREFIX}_{mode.label}"


class AvailabilityCollector(Collector):
    """One gauge family per availability mode.

    Every container referencing an image gets one series in every family:
    1 in the family of the image's current mode, 0 elsewhere.
    """

    def __init__(self, samples: Callable[[], list[ImageSample]]) -> None:
        self._samples = samples

    def collect(self) -> Iterator[GaugeMetricFamily]:
        families = {
            mode: GaugeMetricFamily(metric_name(mode), _HELP[mode], labels=LABELS)
            for mode in AvailabilityMode
        }
        for sample in sorted(self._samples(), key=lambda s: s.image):
            refs = sorted(sample.containers, key=lambda r: (r.namespace, r.kind, r.name, r.container))
            for ref in refs:
                labels = [
                    ref.namespace,
                    ref.container,
                    sample.image,
                    ref.kind.value.lower(),
                    ref.name,
                ]
                for mode, family in families.items():
                    family.add_metric(labels, 1.0 if mode is sample.availability else 0.0)
        yield from families.values()

    def describe(self) -> list[GaugeMetricFamily]:
        # Unchecked collector: registering must not trigger a scrape
        return []
