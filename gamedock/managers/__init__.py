"""Managers package."""

from gamedock.managers.session import LaunchOutcome, SessionManager

__all__ = ["LaunchOutcome", "SessionManager"]
