"""WorkloadIndexer - live reverse index from images to declaring containers."""

import logging
import threading

from kiae.domain.image.model.value import ContainerRef
from kiae.domain.workload.model.workload import WorkloadIdentity, WorkloadSpec

logger = logging.getLogger(__name__)


def _refs(identity: WorkloadIdentity, spec: WorkloadSpec | None) -> dict[ContainerRef, str]:
    if spec is None:
        return {}
    return {
        ContainerRef(
            namespace=identity.namespace,
            kind=identity.kind,
            name=identity.name,
            container=container,
        ): image
        for container, image in spec.containers.items()
    }


class WorkloadIndexer:
    """Maintains ``image -> {ContainerRef}`` for every tracked workload.

    Updates are incremental: an upsert touches only the container slots whose
    image changed, so cost is proportional to the change, not to the number
    of tracked images. The index is shared explicitly with the engine, the
    credential resolver, and garbage collection; nothing reaches it through
    module state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._workloads: dict[WorkloadIdentity, WorkloadSpec] = {}
        self._by_image: dict[str, set[ContainerRef]] = {}

    def upsert(self, identity: WorkloadIdentity, spec: WorkloadSpec) -> frozenset[str]:
        """Insert or replace a workload.

        Returns:
            Images declared by the workload before or after the change.
        """
        with self._lock:
            previous = self._workloads.get(identity)
            self._workloads[identity] = spec
            return self._apply(_refs(identity, previous), _refs(identity, spec))

    def delete(self, identity: WorkloadIdentity) -> frozenset[str]:
        """Forget a workload. Returns the images it used to declare."""
        with self._lock:
            previous = self._workloads.pop(identity, None)
            if previous is None:
                return frozenset()
            return self._apply(_refs(identity, previous), {})

    def lookup(self, image: str) -> frozenset[ContainerRef]:
        """Containers currently declaring ``image`` (empty if none)."""
        with self._lock:
            return frozenset(self._by_image.get(image, ()))

    def workloads_referencing(self, image: str) -> dict[WorkloadIdentity, WorkloadSpec]:
        with self._lock:
            result: dict[WorkloadIdentity, WorkloadSpec] = {}
            for ref in self._by_image.get(image, ()):
                identity = WorkloadIdentity(kind=ref.kind, namespace=ref.namespace, name=ref.name)
                spec = self._workloads.get(identity)
                if spec is not None:
                    result[identity] = spec
            return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_image)

    def _apply(
        self, old: dict[ContainerRef, str], new: dict[ContainerRef, str]
    ) -> frozenset[str]:
        touched: set[str] = set()
        for ref, image in old.items():
            if new.get(ref) == image:
                continue
            refs = self._by_image.get(image)
            if refs is not None:
                refs.discard(ref)
                if not refs:
                    del self._by_image[image]
        for ref, image in new.items():
            if old.get(ref) == image:
                continue
            self._by_image.setdefault(image, set()).add(ref)
        touched.update(old.values())
        touched.update(new.values())
        return frozenset(touched)
