"""CookieStagingGC - remove audio cookie copies of ended sessions.

Every launch with a pulse cookie leaves ``<cookie_staging_dir>/<session_id>/``
behind. A directory is removed once its session is stopped, in error, or has
no record at all; starting and running sessions keep theirs.
"""

from __future__ import annotations

import asyncio

import structlog

from gamedock.resolvers.devices import DeviceAccessResolver
from gamedock.services.gc.base import GCResult, GCTask
from gamedock.stores.sessions import SessionStore

logger = structlog.get_logger()


class CookieStagingGC(GCTask):
    """Sweeps cookie staging directories of ended sessions."""

    def __init__(self, devices: DeviceAccessResolver, store: SessionStore) -> None:
        self._devices = devices
        self._store = store
        self._log = logger.bind(gc_task="cookie_staging")

    @property
    def name(self) -> str:
        return "cookie_staging"

    async def run(self) -> GCResult:
        result = GCResult(task_name=self.name)
        staged = await asyncio.to_thread(self._devices.staged_sessions)

        for session_id in staged:
            session = await self._store.get(session_id)
            if session is not None and not session.is_terminal:
                result.skipped_count += 1
                continue
            try:
                await asyncio.to_thread(self._devices.release_session, session_id)
            except OSError as e:
                self._log.warning("gc.cookie_staging.item_error", session_id=session_id, error=str(e))
                result.add_error(f"staging {session_id}: {e}")
                continue
            result.cleaned_count += 1

        return result
