"""AvailabilityEngine - routes workload changes into the image store."""

import logging
import re
from collections.abc import Iterable

from kiae.domain.image.model.value import ImageSample
from kiae.domain.image.service.store import ImageStore
from kiae.domain.workload.model.workload import WorkloadChanged, WorkloadKind
from kiae.domain.workload.service.indexer import WorkloadIndexer

logger = logging.getLogger(__name__)


class AvailabilityEngine:
    """Composition of indexer and store behind one entry point per concern.

    - on_workload_changed: one handler for every controller kind
    - tick: exactly one check pass
    - collect_garbage: one GC pass, with the indexer as liveness lookup
    - collect: metric samples, forwarded unmodified

    Images referenced only by disabled workloads (zero replicas, suspended
    CronJobs) are tracked but deferred, unless one of those workloads has a
    kind listed in ``force_check_kinds``.
    """

    def __init__(
        self,
        indexer: WorkloadIndexer,
        store: ImageStore,
        ignored_images: Iterable[re.Pattern[str]] = (),
        force_check_kinds: Iterable[WorkloadKind] = (),
    ) -> None:
        self._indexer = indexer
        self._store = store
        self._ignored = list(ignored_images)
        self._force_check_kinds = frozenset(force_check_kinds)

    def on_workload_changed(self, event: WorkloadChanged) -> None:
        """Apply one add/update/delete and reconcile every image it touched.

        Images the workload declared before the change are reconciled too, so
        an image dropped from a template loses that membership right away.
        Redelivery of an unchanged workload is a no-op on the store.
        """
        if event.spec is None:
            images = self._indexer.delete(event.identity)
        else:
            images = self._indexer.upsert(event.identity, event.spec)

        for image in sorted(images):
            if self.is_ignored(image):
                continue
            self._store.reconcile_image(
                image,
                self._indexer.lookup(image),
                deferred=self._is_deferred(image),
            )

    def is_ignored(self, image: str) -> bool:
        return any(pattern.search(image) for pattern in self._ignored)

    def _is_deferred(self, image: str) -> bool:
        workloads = self._indexer.workloads_referencing(image)
        if not workloads:
            return False
        return all(
            not spec.enabled and identity.kind not in self._force_check_kinds
            for identity, spec in workloads.items()
        )

    async def tick(self) -> int:
        """Run one check pass. Returns the number of images checked."""
        return await self._store.run_check_pass()

    def collect_garbage(self) -> int:
        return self._store.run_gc(self._indexer.lookup)

    def collect(self) -> list[ImageSample]:
        return self._store.extract_metrics()
