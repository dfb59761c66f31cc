"""Data models."""

from gamedock.models.catalog import (
    EmulatorSettings,
    Game,
    GameStorage,
    NativeSettings,
    Platform,
    WindowsSettings,
)
from gamedock.models.session import GameSession, SessionStatus

__all__ = [
    "EmulatorSettings",
    "Game",
    "GameSession",
    "GameStorage",
    "NativeSettings",
    "Platform",
    "SessionStatus",
    "WindowsSettings",
]
