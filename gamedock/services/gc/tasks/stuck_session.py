"""StuckSessionGC - fail sessions that never left starting.

A session stays in starting only while a launch is in flight. One still
starting after the timeout belongs to a launch that crashed or hung; its
container (if any) is force-removed and the session moves to error with a
session_timeout code. Launches never hold the session lock across slow
calls, so a hung launch cannot block the sweep; when it resumes it finds
the session expired and removes whatever container it created.
"""

from __future__ import annotations

from datetime import timedelta

import structlog

from gamedock.managers.session import SessionManager
from gamedock.services.gc.base import GCResult, GCTask
from gamedock.stores.sessions import SessionStore
from gamedock.utils.datetime import utcnow

logger = structlog.get_logger()


class StuckSessionGC(GCTask):
    """Sweeps sessions stuck in starting."""

    def __init__(
        self,
        manager: SessionManager,
        store: SessionStore,
        *,
        timeout_seconds: int = 120,
    ) -> None:
        self._manager = manager
        self._store = store
        self._timeout = timedelta(seconds=timeout_seconds)
        self._log = logger.bind(gc_task="stuck_session")

    @property
    def name(self) -> str:
        return "stuck_session"

    async def run(self) -> GCResult:
        result = GCResult(task_name=self.name)
        cutoff = utcnow() - self._timeout
        stuck = await self._store.list_starting_before(cutoff)

        self._log.info("gc.stuck_session.found", count=len(stuck), cutoff=cutoff.isoformat())

        for session in stuck:
            try:
                # Re-read under the session lock; a launch may have finished
                expired = await self._manager.expire_starting(session.id)
            except Exception as e:
                self._log.exception("gc.stuck_session.item_error", session_id=session.id, error=str(e))
                result.add_error(f"session {session.id}: {e}")
                continue

            if expired is None:
                result.skipped_count += 1
            else:
                self._log.info(
                    "gc.stuck_session.expired",
                    session_id=session.id,
                    container_id=expired.container_id,
                )
                result.cleaned_count += 1

        return result
