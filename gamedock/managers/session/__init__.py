"""Session manager."""

from gamedock.managers.session.session import LaunchOutcome, SessionManager

__all__ = ["LaunchOutcome", "SessionManager"]
