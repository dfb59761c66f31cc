"""Read-only game/platform catalog.

Game records are owned by the external storage layer; gamedock only reads
them. The YAML catalog is the simple file-backed form:

    platforms:
      - id: psx
        type: emulator
        image: ghcr.io/gamedock/runner-retroarch:latest
        default_settings: {type: emulator, emulator: retroarch, core: pcsx_rearmed}
    games:
      - id: witcher
        platform_id: windows-wine
        storage: {category: installed, suffix: fast, path: witcher}
        settings: {type: windows, executable: 'C:\\GOG Games\\Witcher\\witcher.exe'}
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError as PydanticValidationError

from gamedock.errors import NotFoundError, ValidationError
from gamedock.models.catalog import Game, Platform

logger = structlog.get_logger()


class Catalog(ABC):
    """Game and platform lookup."""

    @abstractmethod
    def get_game(self, game_id: str) -> Game | None:
        ...

    @abstractmethod
    def get_platform(self, platform_id: str) -> Platform | None:
        ...

    def require_game(self, game_id: str) -> Game:
        game = self.get_game(game_id)
        if game is None:
            raise NotFoundError(f"Game not found: {game_id}")
        return game

    def require_platform(self, platform_id: str) -> Platform:
        platform = self.get_platform(platform_id)
        if platform is None:
            raise NotFoundError(f"Platform not found: {platform_id}")
        return platform


class InMemoryCatalog(Catalog):
    """Catalog over explicit lists."""

    def __init__(self, games: list[Game] | None = None, platforms: list[Platform] | None = None) -> None:
        self._games = {g.id: g for g in games or []}
        self._platforms = {p.id: p for p in platforms or []}

    def get_game(self, game_id: str) -> Game | None:
        return self._games.get(game_id)

    def get_platform(self, platform_id: str) -> Platform | None:
        return self._platforms.get(platform_id)


class YamlCatalog(Catalog):
    """Catalog read from a YAML file on every lookup.

    Platforms in the file override the configured ones with the same id.
    """

    def __init__(self, path: str | Path, platforms: list[Platform] | None = None) -> None:
        self._path = Path(path)
        self._base_platforms = list(platforms or [])
        self._log = logger.bind(catalog=str(self._path))

    def _load(self) -> InMemoryCatalog:
        raw: dict = {}
        if self._path.exists():
            with open(self._path) as f:
                raw = yaml.safe_load(f) or {}

        try:
            games = [Game.model_validate(g) for g in raw.get("games") or []]
            file_platforms = [Platform.model_validate(p) for p in raw.get("platforms") or []]
        except PydanticValidationError as e:
            self._log.error("catalog.invalid", error=str(e))
            raise ValidationError(f"Invalid catalog file {self._path}: {e}") from e

        platforms = {p.id: p for p in self._base_platforms}
        platforms.update({p.id: p for p in file_platforms})
        return InMemoryCatalog(games=games, platforms=list(platforms.values()))

    def get_game(self, game_id: str) -> Game | None:
        return self._load().get_game(game_id)

    def get_platform(self, platform_id: str) -> Platform | None:
        return self._load().get_platform(platform_id)
