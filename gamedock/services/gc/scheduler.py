"""GC Scheduler - runs GC tasks periodically."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING

import structlog

from gamedock.services.gc.base import GCResult, GCTask
from gamedock.services.gc.coordinator import GCCoordinator, NoopCoordinator

if TYPE_CHECKING:
    from gamedock.config import GCConfig

logger = structlog.get_logger()

# Yields the tasks of one cycle; lets each cycle open its own db session
TaskProvider = Callable[[], AbstractAsyncContextManager[list[GCTask]]]


@asynccontextmanager
async def _static_tasks(tasks: list[GCTask]) -> AsyncIterator[list[GCTask]]:
    yield tasks


class GCScheduler:
    """Runs GC tasks serially, once per interval.

    Usage:
        scheduler = GCScheduler(tasks=[StuckSessionGC(...)], config=settings.gc)
        await scheduler.run_once()
        await scheduler.start()
        await scheduler.stop()
    """

    def __init__(
        self,
        config: "GCConfig",
        tasks: list[GCTask] | None = None,
        *,
        task_provider: TaskProvider | None = None,
        coordinator: GCCoordinator | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            config: GC configuration
            tasks: Fixed task list, used when no provider is given
            task_provider: Async context manager factory yielding the tasks
                of one cycle
            coordinator: Coordination strategy (default: NoopCoordinator)
        """
        fixed = list(tasks or [])
        self._task_provider = task_provider or (lambda: _static_tasks(fixed))
        self._config = config
        self._coordinator = coordinator or NoopCoordinator()
        self._sleep = sleep
        self._log = logger.bind(service="gc_scheduler")

        self._running = False
        self._task: asyncio.Task | None = None
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        """Whether the background loop is running."""
        return self._running

    @property
    def is_cycle_running(self) -> bool:
        """Whether a cycle is executing right now."""
        return self._run_lock.locked()

    async def run_once(self) -> list[GCResult]:
        """Run one cycle, waiting for any cycle already in progress."""
        async with self._run_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> list[GCResult]:
        self._log.info("gc.cycle.start")
        results: list[GCResult] = []

        async with self._coordinator.acquire() as acquired:
            if not acquired:
                self._log.info("gc.cycle.skipped", reason="coordination_lock_not_acquired")
                return results

            async with self._task_provider() as tasks:
                for task in tasks:
                    results.append(await self._run_task(task))

        self._log.info(
            "gc.cycle.complete",
            total_cleaned=sum(r.cleaned_count for r in results),
            total_errors=sum(len(r.errors) for r in results),
        )
        return results

    async def _run_task(self, task: GCTask) -> GCResult:
        self._log.info("gc.task.start", task=task.name)
        try:
            result = await task.run()
        except Exception as e:
            self._log.exception("gc.task.failed", task=task.name, error=str(e))
            result = GCResult(task_name=task.name)
            result.add_error(f"Task failed: {e}")
            return result

        result.task_name = task.name
        self._log.info(
            "gc.task.complete",
            task=task.name,
            cleaned=result.cleaned_count,
            skipped=result.skipped_count,
            errors=len(result.errors),
        )
        for error in result.errors:
            self._log.warning("gc.task.item_error", task=task.name, error=error)
        return result

    async def start(self) -> None:
        """Start the background loop."""
        if self._running:
            self._log.warning("gc.scheduler.already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._background_loop())
        self._log.info("gc.scheduler.started", interval_seconds=self._config.interval_seconds)

    async def stop(self) -> None:
        """Stop the background loop."""
        if not self._running:
            return

        self._log.info("gc.scheduler.stopping")
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._log.info("gc.scheduler.stopped")

    async def _background_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                self._log.exception("gc.scheduler.cycle_error", error=str(e))

            try:
                await self._sleep(self._config.interval_seconds)
            except asyncio.CancelledError:
                break
