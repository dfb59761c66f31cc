"""GameSession data model.

A GameSession is created when a launch is requested and is only mutated by
SessionManager. Terminal sessions (stopped, error) are archived, never
deleted.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from gamedock.utils.datetime import utcnow


class SessionStatus(str, Enum):
    """Session lifecycle status."""

    STARTING = "starting"  # Record created, container being created/started
    RUNNING = "running"  # Container started
    STOPPED = "stopped"  # Stopped by request or exited
    ERROR = "error"  # Launch failed or swept as orphan


TERMINAL_STATUSES = frozenset({SessionStatus.STOPPED, SessionStatus.ERROR})

# The only transitions the state machine admits. Nothing moves backward.
ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.STARTING: frozenset({SessionStatus.RUNNING, SessionStatus.ERROR}),
    SessionStatus.RUNNING: frozenset({SessionStatus.STOPPED, SessionStatus.ERROR}),
    SessionStatus.STOPPED: frozenset(),
    SessionStatus.ERROR: frozenset(),
}


class GameSession(SQLModel, table=True):
    """One launched game container."""

    __tablename__ = "game_sessions"

    id: str = Field(primary_key=True)
    game_id: str = Field(index=True)
    platform_id: str

    status: SessionStatus = Field(default=SessionStatus.STARTING, index=True)

    container_id: Optional[str] = Field(default=None)
    container_name: Optional[str] = Field(default=None)

    # Display forwarded into the container: {protocol, host_socket_path, ...}
    display_protocol: Optional[str] = Field(default=None)
    display_info: Optional[dict[str, Any]] = Field(
        default=None,
        sa_column=Column(JSON, nullable=True, default=None),
    )

    # Exclusive claim on an installed/<suffix> write mount, cleared on exit
    resource_key: Optional[str] = Field(default=None, index=True)

    # Error category and hint, set when status == error
    error_code: Optional[str] = Field(default=None)
    error_message: Optional[str] = Field(default=None)
    remediation: Optional[str] = Field(default=None)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = Field(default=None)
    ended_at: Optional[datetime] = Field(default=None)
    duration_seconds: Optional[float] = Field(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition(self, target: SessionStatus) -> bool:
        """Check whether moving to ``target`` is allowed."""
        return target in ALLOWED_TRANSITIONS[self.status]
