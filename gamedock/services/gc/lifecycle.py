"""GC lifecycle management for FastAPI lifespan integration."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from gamedock.api.dependencies import build_session_manager, get_device_resolver, get_engine_client
from gamedock.config import GCConfig, get_settings
from gamedock.db.session import get_async_session
from gamedock.services.gc.base import GCTask
from gamedock.services.gc.scheduler import GCScheduler
from gamedock.services.gc.tasks import (
    CookieStagingGC,
    ExitedSessionGC,
    OrphanContainerGC,
    StuckSessionGC,
)
from gamedock.stores.sessions import SqlSessionStore

logger = structlog.get_logger()

_gc_scheduler: GCScheduler | None = None


@asynccontextmanager
async def _session_per_cycle_tasks() -> AsyncIterator[list[GCTask]]:
    """Tasks of one cycle, sharing a fresh database session."""
    settings = get_settings()
    gc_config = settings.gc

    async with get_async_session() as db_session:
        store = SqlSessionStore(db_session)
        manager = build_session_manager(db_session)
        tasks: list[GCTask] = []

        if gc_config.stuck_session.enabled:
            tasks.append(
                StuckSessionGC(manager, store, timeout_seconds=gc_config.stuck_session.timeout_seconds)
            )
        if gc_config.exited_session.enabled:
            tasks.append(ExitedSessionGC(manager, store))
        if gc_config.cookie_staging.enabled:
            tasks.append(CookieStagingGC(get_device_resolver(), store))
        if gc_config.orphan_container.enabled:
            tasks.append(
                OrphanContainerGC(
                    get_engine_client(),
                    store,
                    instance_id=gc_config.get_instance_id(),
                    name_prefix=settings.docker.container_name_prefix,
                )
            )

        yield tasks


def _task_flags(gc_config: GCConfig) -> dict[str, bool]:
    return {
        "stuck_session": gc_config.stuck_session.enabled,
        "exited_session": gc_config.exited_session.enabled,
        "cookie_staging": gc_config.cookie_staging.enabled,
        "orphan_container": gc_config.orphan_container.enabled,
    }


async def init_gc_scheduler() -> GCScheduler:
    """Create the scheduler and start its loop if GC is enabled.

    The scheduler always exists so the admin endpoint can trigger a cycle.
    """
    global _gc_scheduler

    gc_config = get_settings().gc
    logger.info(
        "gc.init",
        enabled=gc_config.enabled,
        instance_id=gc_config.get_instance_id(),
        interval_seconds=gc_config.interval_seconds,
        run_on_startup=gc_config.run_on_startup,
        tasks=_task_flags(gc_config),
    )

    _gc_scheduler = GCScheduler(gc_config, task_provider=_session_per_cycle_tasks)

    if not gc_config.enabled:
        logger.info("gc.background_disabled", reason="gc.enabled=false")
        return _gc_scheduler

    if gc_config.run_on_startup:
        try:
            results = await _gc_scheduler.run_once()
            logger.info(
                "gc.run_on_startup.complete",
                cleaned=sum(r.cleaned_count for r in results),
                errors=sum(len(r.errors) for r in results),
            )
        except Exception as e:
            # GC problems never block startup
            logger.exception("gc.run_on_startup.failed", error=str(e))

    await _gc_scheduler.start()
    return _gc_scheduler


async def shutdown_gc_scheduler() -> None:
    global _gc_scheduler

    if _gc_scheduler is not None:
        await _gc_scheduler.stop()
        _gc_scheduler = None


def get_gc_scheduler() -> GCScheduler | None:
    return _gc_scheduler
