"""Session record persistence.

SessionManager writes a record on every state transition through the
SessionStore interface. SqlSessionStore is the SQLModel-backed
implementation.

Several database sessions write the same rows (a launch request and the GC
cycle each hold their own), so every query reloads the rows it returns
instead of trusting objects already in the identity map.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gamedock.models.session import TERMINAL_STATUSES, GameSession, SessionStatus


class SessionStore(ABC):
    """Persistence for GameSession records."""

    @abstractmethod
    async def add(self, session: GameSession) -> GameSession:
        ...

    @abstractmethod
    async def get(self, session_id: str) -> GameSession | None:
        ...

    @abstractmethod
    async def save(self, session: GameSession) -> GameSession:
        ...

    @abstractmethod
    async def list(
        self,
        *,
        status: SessionStatus | None = None,
        game_id: str | None = None,
        limit: int = 100,
    ) -> list[GameSession]:
        ...

    @abstractmethod
    async def list_starting_before(self, cutoff: datetime) -> list[GameSession]:
        """Sessions still in starting that were created before ``cutoff``."""
        ...

    @abstractmethod
    async def find_active_by_resource(self, resource_key: str) -> GameSession | None:
        """A non-terminal session holding ``resource_key``, if any."""
        ...


class SqlSessionStore(SessionStore):
    """SessionStore over an async SQLAlchemy session."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def _scalars(self, query) -> list[GameSession]:
        result = await self._db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def add(self, session: GameSession) -> GameSession:
        self._db.add(session)
        await self._db.commit()
        await self._db.refresh(session)
        return session

    async def get(self, session_id: str) -> GameSession | None:
        rows = await self._scalars(select(GameSession).where(GameSession.id == session_id))
        return rows[0] if rows else None

    async def save(self, session: GameSession) -> GameSession:
        self._db.add(session)
        await self._db.commit()
        await self._db.refresh(session)
        return session

    async def list(
        self,
        *,
        status: SessionStatus | None = None,
        game_id: str | None = None,
        limit: int = 100,
    ) -> list[GameSession]:
        query = select(GameSession)
        if status is not None:
            query = query.where(GameSession.status == status)
        if game_id is not None:
            query = query.where(GameSession.game_id == game_id)
        query = query.order_by(GameSession.created_at.desc()).limit(limit)
        return await self._scalars(query)

    async def list_starting_before(self, cutoff: datetime) -> list[GameSession]:
        return await self._scalars(
            select(GameSession).where(
                GameSession.status == SessionStatus.STARTING,
                GameSession.created_at < cutoff,
            )
        )

    async def find_active_by_resource(self, resource_key: str) -> GameSession | None:
        rows = await self._scalars(
            select(GameSession).where(
                GameSession.resource_key == resource_key,
                GameSession.status.notin_(list(TERMINAL_STATUSES)),
            )
        )
        return rows[0] if rows else None
