"""Game session endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from gamedock.api.dependencies import CatalogDep, SessionManagerDep
from gamedock.models.launch import SessionRequest
from gamedock.models.session import GameSession, SessionStatus

router = APIRouter()


class SessionErrorInfo(BaseModel):
    code: str
    message: str | None = None
    remediation: str | None = None


class SessionResponse(BaseModel):
    """Session response model."""

    id: str
    game_id: str
    platform_id: str
    status: str
    container_id: str | None
    container_name: str | None
    display_protocol: str | None
    display: dict[str, Any] | None
    error: SessionErrorInfo | None = None
    created_at: datetime
    started_at: datetime | None
    ended_at: datetime | None
    duration_seconds: float | None


class LaunchResponse(SessionResponse):
    warnings: list[str] = []


class SessionListResponse(BaseModel):
    items: list[SessionResponse]


class HostPathResponse(BaseModel):
    container_path: str
    host_path: str | None


def _to_response(session: GameSession) -> dict[str, Any]:
    error = None
    if session.error_code:
        error = SessionErrorInfo(
            code=session.error_code,
            message=session.error_message,
            remediation=session.remediation,
        )
    return dict(
        id=session.id,
        game_id=session.game_id,
        platform_id=session.platform_id,
        status=session.status.value,
        container_id=session.container_id,
        container_name=session.container_name,
        display_protocol=session.display_protocol,
        display=session.display_info,
        error=error,
        created_at=session.created_at,
        started_at=session.started_at,
        ended_at=session.ended_at,
        duration_seconds=session.duration_seconds,
    )


@router.post("", response_model=LaunchResponse, status_code=201)
async def launch_session(
    request: SessionRequest,
    manager: SessionManagerDep,
    catalog: CatalogDep,
) -> LaunchResponse:
    """Launch a game in a new container session."""
    game = catalog.require_game(request.game_id)
    platform = catalog.require_platform(request.platform_id or game.platform_id)
    outcome = await manager.launch(game, platform, request)
    return LaunchResponse(**_to_response(outcome.session), warnings=outcome.warnings)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    manager: SessionManagerDep,
    status: SessionStatus | None = Query(None),
    game_id: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> SessionListResponse:
    sessions = await manager.list(status=status, game_id=game_id, limit=limit)
    return SessionListResponse(items=[SessionResponse(**_to_response(s)) for s in sessions])


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, manager: SessionManagerDep) -> SessionResponse:
    return SessionResponse(**_to_response(await manager.get(session_id)))


@router.post("/{session_id}/stop", response_model=SessionResponse)
async def stop_session(session_id: str, manager: SessionManagerDep) -> SessionResponse:
    """Stop a session. Stopping an already stopped session returns it unchanged."""
    return SessionResponse(**_to_response(await manager.stop(session_id)))


@router.post("/{session_id}/refresh", response_model=SessionResponse)
async def refresh_session(session_id: str, manager: SessionManagerDep) -> SessionResponse:
    """Reconcile the session with its container state."""
    return SessionResponse(**_to_response(await manager.refresh(session_id)))


@router.get("/{session_id}/logs")
async def session_logs(
    session_id: str,
    manager: SessionManagerDep,
    follow: bool = Query(False),
    tail: int = Query(200, ge=1, le=10000),
) -> StreamingResponse:
    """Container output as plain text."""
    # Fail with 404 before the response starts streaming
    await manager.get(session_id)

    async def lines():
        async for line in manager.logs(session_id, follow=follow, tail=tail):
            yield line if line.endswith("\n") else line + "\n"

    return StreamingResponse(lines(), media_type="text/plain")


@router.get("/{session_id}/host-path", response_model=HostPathResponse)
async def session_host_path(
    session_id: str,
    manager: SessionManagerDep,
    path: str = Query(..., description="Absolute path inside the container"),
) -> HostPathResponse:
    """Map a container path to the host path backing it."""
    host_path = await manager.host_path(session_id, path)
    return HostPathResponse(container_path=path, host_path=host_path)
