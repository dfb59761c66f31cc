"""SessionManager - owns the GameSession state machine.

starting -> running -> stopped, with any failure moving to error. Terminal
states have no outgoing transitions, so ended_at and duration are written
exactly once. Every transition is persisted through the SessionStore.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

import structlog

from gamedock.concurrency.locks import (
    cleanup_session_lock,
    get_resource_lock,
    get_session_lock,
)
from gamedock.drivers.base import ContainerStatus, EngineClient
from gamedock.errors import (
    ContainerRuntimeError,
    GamedockError,
    InvalidTransitionError,
    NotFoundError,
    ResourceConflictError,
    SessionTimeoutError,
)
from gamedock.launch.builder import exclusive_resource_key
from gamedock.launch.planner import LaunchPlanner
from gamedock.models.catalog import Game, Platform
from gamedock.models.launch import SessionRequest
from gamedock.models.session import GameSession, SessionStatus
from gamedock.resolvers.host_paths import resolve_host_path
from gamedock.stores.sessions import SessionStore
from gamedock.utils.datetime import utcnow

logger = structlog.get_logger()

MANAGED_LABEL = "gamedock.managed"
SESSION_LABEL = "gamedock.session_id"
GAME_LABEL = "gamedock.game_id"
PLATFORM_LABEL = "gamedock.platform_id"
INSTANCE_LABEL = "gamedock.instance_id"


@dataclass
class LaunchOutcome:
    """Running session plus the non-fatal warnings of its build."""

    session: GameSession
    warnings: list[str] = field(default_factory=list)


class SessionManager:
    """Manages game session (container) lifecycle."""

    def __init__(
        self,
        engine: EngineClient,
        store: SessionStore,
        planner: LaunchPlanner | None = None,
        *,
        container_name_prefix: str = "gamedock-session-",
        instance_id: str = "gamedock",
    ) -> None:
        self._engine = engine
        self._store = store
        self._planner = planner
        self._name_prefix = container_name_prefix
        self._instance_id = instance_id
        self._log = logger.bind(manager="session")

    # -- queries ---------------------------------------------------------

    async def get(self, session_id: str) -> GameSession:
        """Get a session or raise NotFoundError."""
        session = await self._store.get(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    async def list(
        self,
        *,
        status: SessionStatus | None = None,
        game_id: str | None = None,
        limit: int = 100,
    ) -> list[GameSession]:
        return await self._store.list(status=status, game_id=game_id, limit=limit)

    # -- launch ----------------------------------------------------------

    async def launch(
        self,
        game: Game,
        platform: Platform,
        request: SessionRequest | None = None,
    ) -> LaunchOutcome:
        """Launch a game in a new session.

        The session record exists (in starting) before any resolver runs, so
        every failure is recorded on it before being re-raised. The session
        lock is only held while the record is re-read and written, never
        across planning or engine calls, so the stuck-session sweep can
        expire a hung launch. Each write re-checks that the session is still
        starting.

        Raises:
            ResourceConflictError: Another active session holds the
                installation this launch would write to.
            SessionTimeoutError: The sweep expired the session while the
                launch was in flight; any container it created is removed.
            GamedockError: Any resolver, builder or engine failure; the
                session is left in error.
        """
        if self._planner is None:
            raise RuntimeError("SessionManager was created without a LaunchPlanner")

        request = request or SessionRequest(game_id=game.id, platform_id=platform.id)
        session_id = request.session_id or f"sess-{uuid.uuid4().hex[:12]}"
        request = request.model_copy(update={"session_id": session_id})
        resource_key = exclusive_resource_key(game, platform)

        claimed = await self._claim(session_id, game, platform, resource_key)

        try:
            plan = await self._planner.plan(game, platform, request)
        except GamedockError as e:
            await self._fail_starting(session_id, e)
            raise
        except Exception as e:
            error = self._wrap(e, "plan")
            await self._fail_starting(session_id, error)
            raise error from e

        await self._update_starting(
            session_id,
            display_protocol=plan.display.protocol.value,
            display_info=plan.display.describe(),
        )

        labels = {
            MANAGED_LABEL: "true",
            SESSION_LABEL: session_id,
            GAME_LABEL: game.id,
            PLATFORM_LABEL: platform.id,
            INSTANCE_LABEL: self._instance_id,
        }
        try:
            container_id = await self._engine.create(
                plan.result.spec,
                name=claimed.container_name,
                labels=labels,
            )
        except Exception as e:
            error = self._wrap(e, "create")
            await self._fail_starting(session_id, error)
            raise error from e

        try:
            await self._update_starting(session_id, container_id=container_id)
        except SessionTimeoutError:
            await self._remove_quietly(container_id)
            raise

        try:
            await self._engine.start(container_id)
            inspection = await self._engine.inspect(container_id)
            if inspection.status in (ContainerStatus.CREATED, ContainerStatus.NOT_FOUND):
                raise ContainerRuntimeError(
                    "Container did not start",
                    details={"container_id": container_id, "status": inspection.status.value},
                )
        except Exception as e:
            error = self._wrap(e, "start")
            await self._remove_quietly(container_id)
            await self._fail_starting(session_id, error)
            raise error from e

        try:
            session = await self._update_starting(session_id, target=SessionStatus.RUNNING)
        except SessionTimeoutError:
            await self._remove_quietly(container_id)
            raise

        self._log.info(
            "session.launched",
            session_id=session_id,
            game_id=game.id,
            container_id=container_id,
            display=session.display_protocol,
            warnings=len(plan.result.warnings),
        )
        return LaunchOutcome(session=session, warnings=list(plan.result.warnings))

    async def _claim(
        self,
        session_id: str,
        game: Game,
        platform: Platform,
        resource_key: str | None,
    ) -> GameSession:
        """Create the starting record, holding the exclusive claim if any."""
        async with AsyncExitStack() as stack:
            if resource_key is not None:
                await stack.enter_async_context(await get_resource_lock(resource_key))
                holder = await self._store.find_active_by_resource(resource_key)
                if holder is not None:
                    self._log.warning(
                        "session.resource_conflict",
                        resource_key=resource_key,
                        holder=holder.id,
                    )
                    raise ResourceConflictError(
                        f"Installation is in use by session {holder.id}",
                        details={"resource_key": resource_key, "session_id": holder.id},
                    )

            if await self._store.get(session_id) is not None:
                raise ResourceConflictError(
                    f"Session id already in use: {session_id}",
                    remediation="Launch without a session id or pick a new one",
                )

            session = GameSession(
                id=session_id,
                game_id=game.id,
                platform_id=platform.id,
                status=SessionStatus.STARTING,
                container_name=f"{self._name_prefix}{session_id}",
                resource_key=resource_key,
            )
            self._log.info(
                "session.create",
                session_id=session_id,
                game_id=game.id,
                platform_id=platform.id,
                resource_key=resource_key,
            )
            return await self._store.add(session)

    # -- transitions -----------------------------------------------------

    async def _transition(self, session: GameSession, target: SessionStatus) -> GameSession:
        """Move ``session`` to ``target`` and persist it.

        Raises:
            InvalidTransitionError: ``target`` is not reachable from the
                current status.
        """
        if not session.can_transition(target):
            raise InvalidTransitionError(
                f"Cannot move session from {session.status.value} to {target.value}",
                details={"session_id": session.id, "from": session.status.value, "to": target.value},
            )

        now = utcnow()
        previous = session.status
        session.status = target
        if target == SessionStatus.RUNNING:
            session.started_at = now
        if session.is_terminal:
            session.ended_at = now
            started = session.started_at or session.created_at
            session.duration_seconds = max(0.0, (now - started).total_seconds())

        await self._store.save(session)
        self._log.info(
            "session.transition",
            session_id=session.id,
            from_status=previous.value,
            to_status=target.value,
        )
        if session.is_terminal:
            await cleanup_session_lock(session.id)
        return session

    async def _update_starting(
        self,
        session_id: str,
        *,
        target: SessionStatus | None = None,
        **changes: Any,
    ) -> GameSession:
        """Apply ``changes`` (and move to ``target``) if still starting.

        Raises:
            SessionTimeoutError: The session already left starting, which
                only the stuck-session sweep does while a launch runs.
        """
        lock = await get_session_lock(session_id)
        async with lock:
            session = await self.get(session_id)
            if session.status != SessionStatus.STARTING:
                self._log.warning(
                    "session.expired_during_launch",
                    session_id=session_id,
                    status=session.status.value,
                )
                raise SessionTimeoutError(
                    f"Session {session_id} was expired while launching",
                    details={"session_id": session_id, "status": session.status.value},
                )
            for key, value in changes.items():
                setattr(session, key, value)
            if target is not None:
                return await self._transition(session, target)
            return await self._store.save(session)

    async def _fail_starting(self, session_id: str, error: GamedockError) -> None:
        """Record a launch failure unless the session already left starting."""
        lock = await get_session_lock(session_id)
        async with lock:
            session = await self.get(session_id)
            if session.status == SessionStatus.STARTING:
                await self._fail(session, error)

    async def _fail(self, session: GameSession, error: GamedockError) -> GameSession:
        """Record ``error`` on the session and move it to error."""
        self._log.error(
            "session.failed",
            session_id=session.id,
            code=error.code,
            error=error.message,
        )
        session.error_code = error.code
        session.error_message = error.message
        session.remediation = error.remediation
        return await self._transition(session, SessionStatus.ERROR)

    @staticmethod
    def _wrap(e: Exception, operation: str) -> GamedockError:
        if isinstance(e, GamedockError):
            return e
        if operation == "plan":
            return GamedockError(
                "Could not resolve host state for the launch",
                details={"operation": operation, "error": str(e)},
            )
        return ContainerRuntimeError(
            f"Container engine failed to {operation} container",
            details={"operation": operation, "error": str(e)},
        )

    async def _remove_quietly(self, container_id: str) -> None:
        try:
            await self._engine.remove(container_id)
        except Exception as e:
            self._log.warning("session.cleanup_failed", container_id=container_id, error=str(e))

    # -- stop / observe --------------------------------------------------

    async def stop(self, session_id: str) -> GameSession:
        """Stop a session. Stopping a terminal session is a no-op.

        Raises:
            InvalidTransitionError: The session is still starting.
            ContainerRuntimeError: The engine failed; the session is moved
                to error.
        """
        lock = await get_session_lock(session_id)
        async with lock:
            session = await self.get(session_id)
            if session.is_terminal:
                return session
            if session.status == SessionStatus.STARTING:
                raise InvalidTransitionError(
                    "Session is still starting",
                    remediation="Wait for the launch to finish or for the stuck-session sweep",
                    details={"session_id": session_id},
                )

            self._log.info("session.stop", session_id=session_id, container_id=session.container_id)
            if session.container_id:
                try:
                    await self._engine.stop(session.container_id)
                    await self._engine.remove(session.container_id)
                except Exception as e:
                    error = self._wrap(e, "stop")
                    await self._fail(session, error)
                    raise error from e

            return await self._transition(session, SessionStatus.STOPPED)

    async def refresh(self, session_id: str) -> GameSession:
        """Reconcile a running session with its container.

        A running session whose container has exited or vanished moves to
        stopped and the exited container is removed.
        """
        lock = await get_session_lock(session_id)
        async with lock:
            session = await self.get(session_id)
            if session.status != SessionStatus.RUNNING or not session.container_id:
                return session

            inspection = await self._engine.inspect(session.container_id)
            if inspection.status not in (ContainerStatus.EXITED, ContainerStatus.NOT_FOUND):
                return session

            self._log.info(
                "session.container_exited",
                session_id=session_id,
                container_id=session.container_id,
                exit_code=inspection.exit_code,
            )
            if inspection.status == ContainerStatus.EXITED:
                await self._remove_quietly(session.container_id)
            return await self._transition(session, SessionStatus.STOPPED)

    async def wait_for_exit(self, session_id: str) -> GameSession:
        """Block until the session's container exits, then refresh it."""
        session = await self.get(session_id)
        if session.status == SessionStatus.RUNNING and session.container_id:
            exit_code = await self._engine.wait(session.container_id)
            self._log.info("session.exited", session_id=session_id, exit_code=exit_code)
        return await self.refresh(session_id)

    async def expire_starting(self, session_id: str) -> GameSession | None:
        """Force a session stuck in starting into error.

        The record is re-read under the session lock, so a launch that
        committed running in another database session is left alone.
        Returns None when the session has left starting in the meantime.
        """
        lock = await get_session_lock(session_id)
        async with lock:
            session = await self.get(session_id)
            if session.status != SessionStatus.STARTING:
                return None
            if session.container_id:
                await self._engine.remove(session.container_id)
            return await self._fail(session, SessionTimeoutError())

    async def logs(
        self,
        session_id: str,
        *,
        follow: bool = False,
        tail: int = 200,
    ) -> AsyncIterator[str]:
        """Log lines of the session's container."""
        session = await self.get(session_id)
        if not session.container_id:
            return
        async for line in self._engine.logs(session.container_id, follow=follow, tail=tail):
            yield line

    async def host_path(self, session_id: str, container_path: str) -> str | None:
        """Host path backing ``container_path`` in the session's container.

        Raises:
            NotFoundError: The session has no live container.
        """
        session = await self.get(session_id)
        if not session.container_id:
            raise NotFoundError(f"Session has no container: {session_id}")
        inspection = await self._engine.inspect(session.container_id)
        if inspection.status == ContainerStatus.NOT_FOUND:
            raise NotFoundError(f"Container not found for session: {session_id}")
        return resolve_host_path(container_path, inspection.mounts)
