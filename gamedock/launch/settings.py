"""Effective per-game settings: platform defaults overlaid by game settings."""

from __future__ import annotations

from gamedock.errors import ValidationError
from gamedock.models.catalog import (
    EmulatorSettings,
    Game,
    NativeSettings,
    Platform,
    WindowsSettings,
)

_MERGED_DICT_FIELDS = ("env", "dll_overrides")


def resolve_settings(
    platform: Platform,
    game: Game,
) -> NativeSettings | WindowsSettings | EmulatorSettings:
    """Overlay the fields the game sets explicitly onto the platform defaults.

    Dict fields are merged key by key; everything else is replaced.

    Raises:
        ValidationError: If the game's settings belong to another platform family.
    """
    base = platform.base_settings()
    if game.settings is None:
        return base

    if game.settings.type != platform.type:
        raise ValidationError(
            f"Game '{game.id}' has {game.settings.type} settings but platform "
            f"'{platform.id}' is {platform.type}",
            details={"game_id": game.id, "platform_id": platform.id},
        )

    overrides = game.settings.model_dump(exclude_unset=True, exclude={"type"})
    for name in _MERGED_DICT_FIELDS:
        if name in overrides:
            overrides[name] = {**getattr(base, name), **overrides[name]}
    return type(base).model_validate({**base.model_dump(), **overrides})
