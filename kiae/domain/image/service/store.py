"""ImageStore - authoritative per-image availability cache."""

import asyncio
import dataclasses
import logging
import threading
from collections.abc import Callable, Collection, Iterable
from datetime import UTC, datetime

from kiae.domain.image.model.value import (
    AvailabilityMode,
    ContainerRef,
    ImageRecord,
    ImageSample,
)
from kiae.domain.image.port.checker import ImageChecker

logger = logging.getLogger(__name__)

LivenessLookup = Callable[[str], Collection[ContainerRef]]


def _check_order(record: ImageRecord) -> tuple[bool, float]:
    """Never-checked images first, then least recently checked."""
    if record.last_checked_at is None:
        return (False, 0.0)
    return (True, record.last_checked_at.timestamp())


class ImageStore:
    """Owns every ImageRecord and schedules batched re-checks.

    Two queues feed each check pass:

    - primary: images in state Unknown or Available, never-checked first and
      then least recently checked, up to ``batch_size`` per pass
    - retry: images in a failure state, least recently checked first, up to
      ``failed_batch_size`` per pass

    The split bounds the retry rate against failing registries and the
    latency for newly discovered images independently.

    All record mutation happens under one lock that is never held across an
    ``await``, so metric extraction never waits behind a running probe. An
    image is never probed by two overlapping passes.

    Example:
        store = ImageStore(checker, batch_size=50, failed_batch_size=20)
        store.reconcile_image("nginx:1.25", {ref})
        await store.run_check_pass()
        samples = store.extract_metrics()
    """

    def __init__(
        self,
        checker: ImageChecker,
        batch_size: int = 50,
        failed_batch_size: int = 20,
        concurrency: int = 10,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._checker = checker
        self._batch_size = batch_size
        self._failed_batch_size = failed_batch_size
        self._concurrency = concurrency
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._records: dict[str, ImageRecord] = {}
        self._in_flight: set[str] = set()

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    def reconcile_image(
        self,
        image: str,
        containers: Iterable[ContainerRef],
        deferred: bool = False,
    ) -> None:
        """Replace the membership of ``image``, creating its record if needed.

        Repeated calls with identical membership leave the record untouched.

        Args:
            image: Image reference as declared by the workloads.
            containers: Every container currently declaring the image.
            deferred: Keep tracking and exporting the image but skip probing it.
        """
        members = frozenset(containers)
        with self._lock:
            record = self._records.get(image)
            if record is None:
                self._records[image] = ImageRecord(image=image, containers=members, deferred=deferred)
                logger.debug("Tracking new image %s (%d containers)", image, len(members))
                return
            if record.containers == members and record.deferred == deferred:
                return
            record.containers = members
            record.deferred = deferred
            record.generation += 1

    # -------------------------------------------------------------------------
    # Checking
    # -------------------------------------------------------------------------

    async def run_check_pass(self) -> int:
        """Check one batch of images.

        Returns:
            Number of images checked in this pass.
        """
        with self._lock:
            batch = self._select_batch()
            self._in_flight.update(batch)

        if not batch:
            return 0

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _run(image: str) -> None:
            async with semaphore:
                mode = await self._check(image)
            self._record_result(image, mode)

        try:
            await asyncio.gather(*(_run(image) for image in batch))
        finally:
            with self._lock:
                self._in_flight.difference_update(batch)

        logger.debug("Check pass completed for %d images", len(batch))
        return len(batch)

    def _select_batch(self) -> list[str]:
        eligible = [
            r
            for r in self._records.values()
            if r.containers and not r.deferred and r.image not in self._in_flight
        ]
        primary = sorted(
            (
                r
                for r in eligible
                if r.availability in (AvailabilityMode.UNKNOWN, AvailabilityMode.AVAILABLE)
            ),
            key=_check_order,
        )
        retry = sorted((r for r in eligible if r.availability.is_failure), key=_check_order)
        return [r.image for r in primary[: self._batch_size]] + [
            r.image for r in retry[: self._failed_batch_size]
        ]

    async def _check(self, image: str) -> AvailabilityMode:
        try:
            return await self._checker.check(image)
        except Exception:
            logger.exception("Check of image %s failed unexpectedly", image)
            return AvailabilityMode.UNKNOWN_ERROR

    def _record_result(self, image: str, mode: AvailabilityMode) -> None:
        with self._lock:
            record = self._records.get(image)
            if record is None:
                # Collected while the probe was running
                return
            record.availability = mode
            record.last_checked_at = self._clock()
            if mode is AvailabilityMode.AVAILABLE:
                record.consecutive_failures = 0
            else:
                record.consecutive_failures += 1

    # -------------------------------------------------------------------------
    # Garbage collection
    # -------------------------------------------------------------------------

    def run_gc(self, liveness_lookup: LivenessLookup) -> int:
        """Delete records no container references any more.

        A record goes only if its membership is empty, ``liveness_lookup``
        confirms zero containers, and no reconcile touched it since it was
        selected. Membership is re-validated under the lock at deletion time.

        Returns:
            Number of records deleted.
        """
        with self._lock:
            candidates = {
                image: record.generation
                for image, record in self._records.items()
                if not record.containers
            }

        removed = 0
        for image, generation in candidates.items():
            if liveness_lookup(image):
                continue
            with self._lock:
                record = self._records.get(image)
                if record is None or record.containers or record.generation != generation:
                    continue
                del self._records[image]
            removed += 1
            logger.debug("Collected unreferenced image %s", image)

        if removed:
            logger.info("Garbage collection removed %d images", removed)
        return removed

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def extract_metrics(self) -> list[ImageSample]:
        """Best-known state of every referenced image."""
        with self._lock:
            rows = [
                (r.image, r.availability, r.containers)
                for r in self._records.values()
                if r.containers
            ]
        return [
            ImageSample(image=image, availability=availability, containers=containers)
            for image, availability, containers in rows
        ]

    def get(self, image: str) -> ImageRecord | None:
        """Detached copy of the record for ``image``."""
        with self._lock:
            record = self._records.get(image)
            return dataclasses.replace(record) if record is not None else None

    def is_in_flight(self, image: str) -> bool:
        with self._lock:
            return image in self._in_flight

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
