"""ExitedSessionGC - settle running sessions whose game has exited."""

from __future__ import annotations

import structlog

from gamedock.managers.session import SessionManager
from gamedock.models.session import SessionStatus
from gamedock.services.gc.base import GCResult, GCTask
from gamedock.stores.sessions import SessionStore

logger = structlog.get_logger()


class ExitedSessionGC(GCTask):
    """Moves running sessions with an exited container to stopped."""

    def __init__(self, manager: SessionManager, store: SessionStore) -> None:
        self._manager = manager
        self._store = store
        self._log = logger.bind(gc_task="exited_session")

    @property
    def name(self) -> str:
        return "exited_session"

    async def run(self) -> GCResult:
        result = GCResult(task_name=self.name)
        running = await self._store.list(status=SessionStatus.RUNNING, limit=1000)

        for session in running:
            try:
                refreshed = await self._manager.refresh(session.id)
            except Exception as e:
                self._log.exception("gc.exited_session.item_error", session_id=session.id, error=str(e))
                result.add_error(f"session {session.id}: {e}")
                continue

            if refreshed.status == SessionStatus.STOPPED:
                result.cleaned_count += 1
            else:
                result.skipped_count += 1

        return result
