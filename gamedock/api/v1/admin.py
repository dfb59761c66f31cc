"""Admin endpoints: manual GC trigger and status."""

from __future__ import annotations

import time

from fastapi import APIRouter
from pydantic import BaseModel, Field

from gamedock.config import get_settings
from gamedock.errors import GamedockError, ResourceConflictError
from gamedock.services.gc.lifecycle import get_gc_scheduler

router = APIRouter(prefix="/admin", tags=["admin"])


class GCRunRequest(BaseModel):
    tasks: list[str] | None = Field(
        default=None,
        description="Task names to report. None = all enabled tasks. "
        "Valid names: stuck_session, exited_session, cookie_staging, orphan_container",
    )


class GCTaskResult(BaseModel):
    task_name: str
    cleaned_count: int
    skipped_count: int
    errors: list[str]


class GCRunResponse(BaseModel):
    results: list[GCTaskResult]
    total_cleaned: int
    total_errors: int
    duration_ms: int


class GCStatusResponse(BaseModel):
    enabled: bool
    is_running: bool
    instance_id: str
    interval_seconds: int
    tasks: dict[str, bool]


class GCUnavailableError(GamedockError):
    code = "gc_unavailable"
    message = "GC scheduler is not available"
    status_code = 503


@router.post("/gc/run", response_model=GCRunResponse)
async def run_gc(request: GCRunRequest | None = None) -> GCRunResponse:
    """Run one GC cycle synchronously.

    Works with ``gc.enabled: false``; the scheduler always exists.
    """
    scheduler = get_gc_scheduler()
    if scheduler is None:
        raise GCUnavailableError()
    if scheduler.is_cycle_running:
        raise ResourceConflictError(
            "GC is already running",
            remediation="Wait for the current cycle to complete",
        )

    start = time.monotonic()
    results = await scheduler.run_once()
    if request and request.tasks is not None:
        allowed = set(request.tasks)
        results = [r for r in results if r.task_name in allowed]

    return GCRunResponse(
        results=[
            GCTaskResult(
                task_name=r.task_name,
                cleaned_count=r.cleaned_count,
                skipped_count=r.skipped_count,
                errors=r.errors,
            )
            for r in results
        ],
        total_cleaned=sum(r.cleaned_count for r in results),
        total_errors=sum(len(r.errors) for r in results),
        duration_ms=int((time.monotonic() - start) * 1000),
    )


@router.get("/gc/status", response_model=GCStatusResponse)
async def get_gc_status() -> GCStatusResponse:
    gc_config = get_settings().gc
    scheduler = get_gc_scheduler()
    return GCStatusResponse(
        enabled=gc_config.enabled,
        is_running=scheduler.is_cycle_running if scheduler else False,
        instance_id=gc_config.get_instance_id(),
        interval_seconds=gc_config.interval_seconds,
        tasks={
            "stuck_session": gc_config.stuck_session.enabled,
            "exited_session": gc_config.exited_session.enabled,
            "cookie_staging": gc_config.cookie_staging.enabled,
            "orphan_container": gc_config.orphan_container.enabled,
        },
    )
