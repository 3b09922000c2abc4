"""ExporterRuntime - drives the engine: cluster resync, check passes, and GC."""

import asyncio
import logging
from contextlib import AsyncExitStack

from apscheduler import AsyncScheduler
from apscheduler.triggers.interval import IntervalTrigger

from kiae.application.engine import AvailabilityEngine
from kiae.infrastructure.kubernetes.source import KubernetesSource

logger = logging.getLogger(__name__)

TICK_SCHEDULE_ID = "check-pass"
GC_SCHEDULE_ID = "garbage-collection"

# Two probe attempts at their full deadline plus the backoff between them
SHUTDOWN_TIMEOUT = 31.0


class ExporterRuntime:
    """Runs the cluster source and the periodic engine tasks.

    Check passes start right away; newly discovered images are checked as
    soon as the source delivers them. Garbage collection is scheduled only
    after the source's initial sync, since GC trusts the indexer to reflect
    every live workload.

    Stopping removes the check schedule and waits up to ``shutdown_timeout``
    for a running check pass, so in-flight probes end at their own deadline
    instead of being cancelled under the shared registry client.

    Usage:
        runtime = ExporterRuntime(engine, source, check_interval=15, gc_interval=300)
        async with runtime:
            await serve_forever()
    """

    def __init__(
        self,
        engine: AvailabilityEngine,
        source: KubernetesSource,
        check_interval: float = 15.0,
        gc_interval: float = 300.0,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
    ) -> None:
        self._engine = engine
        self._source = source
        self._check_interval = check_interval
        self._gc_interval = gc_interval
        self._shutdown_timeout = shutdown_timeout
        self._stopping = False
        self._scheduler: AsyncScheduler | None = None
        self._exit_stack: AsyncExitStack | None = None
        self._source_task: asyncio.Task | None = None
        self._gc_task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None

    @property
    def synced(self) -> bool:
        return self._source.initial_sync.is_set()

    async def start(self) -> None:
        self._stopping = False
        self._exit_stack = AsyncExitStack()
        await self._exit_stack.__aenter__()

        self._scheduler = AsyncScheduler()
        await self._exit_stack.enter_async_context(self._scheduler)
        await self._scheduler.add_schedule(
            self._run_tick,
            IntervalTrigger(seconds=self._check_interval),
            id=TICK_SCHEDULE_ID,
        )
        await self._scheduler.start_in_background()

        self._source_task = asyncio.create_task(self._source.run(), name="cluster-source")
        self._gc_task = asyncio.create_task(self._schedule_gc_after_sync(), name="gc-gate")
        logger.info(
            "Exporter started: check every %.0fs, gc every %.0fs",
            self._check_interval,
            self._gc_interval,
        )

    async def stop(self) -> None:
        self._stopping = True
        for task in (self._gc_task, self._source_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._scheduler is not None:
            await self._scheduler.remove_schedule(TICK_SCHEDULE_ID)
        await self._drain_check_pass()

        if self._exit_stack:
            await self._exit_stack.__aexit__(None, None, None)
            self._exit_stack = None
        self._scheduler = None
        logger.info("Exporter stopped")

    async def _schedule_gc_after_sync(self) -> None:
        await self._source.initial_sync.wait()
        if self._scheduler is None:
            return
        await self._scheduler.add_schedule(
            self._run_gc,
            IntervalTrigger(seconds=self._gc_interval),
            id=GC_SCHEDULE_ID,
        )
        logger.info("Garbage collection scheduled")

    async def _drain_check_pass(self) -> None:
        task = self._tick_task
        if task is None or task.done():
            return
        logger.info("Waiting for the running check pass to finish")
        done, _ = await asyncio.wait([task], timeout=self._shutdown_timeout)
        if not done:
            logger.warning(
                "Check pass still running after %.0fs, cancelling", self._shutdown_timeout
            )
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _run_tick(self) -> None:
        if self._stopping:
            return
        # The scheduler cancels running jobs on exit; the pass itself is shielded
        self._tick_task = asyncio.ensure_future(self._engine.tick())
        try:
            checked = await asyncio.shield(self._tick_task)
            if checked:
                logger.debug("Checked %d images", checked)
        except (asyncio.CancelledError, SystemExit, KeyboardInterrupt):
            raise
        except Exception as e:
            logger.error(f"Check pass failed: {e}")

    async def _run_gc(self) -> None:
        try:
            self._engine.collect_garbage()
        except Exception as e:
            logger.error(f"Garbage collection failed: {e}")

    async def __aenter__(self) -> "ExporterRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.stop()
