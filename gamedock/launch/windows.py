"""Wine launch helpers.

Compatibility attributes are passed to the runner as environment values;
the runner applies registry edits and winetricks at container start.
"""

from __future__ import annotations

import json
import re
import shlex
from pathlib import PurePosixPath

from gamedock.models.catalog import WindowsSettings

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def to_prefix_path(executable: str, prefix: str) -> str:
    r"""Map a Windows path into the prefix's drive_c.

    ``C:\GOG Games\Game\game.exe`` becomes
    ``<prefix>/drive_c/GOG Games/Game/game.exe``. A Linux path that already
    points into some prefix's ``drive_c`` is re-rooted onto ``prefix``.
    """
    drive_c = PurePosixPath(prefix) / "drive_c"

    if executable.startswith("/") and "/drive_c/" in executable:
        relative = executable.split("/drive_c/", 1)[1]
        return str(drive_c / relative)

    linux_path = _DRIVE_RE.sub("", executable).replace("\\", "/").lstrip("/")
    return str(drive_c / linux_path)


def clean_arguments(args: list[str]) -> list[str]:
    """Drop NUL bytes and empty arguments."""
    cleaned = (a.replace("\0", "") for a in args if isinstance(a, str))
    return [a for a in cleaned if a]


def wine_command(args: list[str]) -> list[str]:
    """Shell wrapper so ``${GAME_EXECUTABLE}`` expands inside the container."""
    script = 'wine "${GAME_EXECUTABLE}"'
    if args:
        script += " " + " ".join(shlex.quote(a) for a in args)
    return ["bash", "-lc", script]


def wine_environment(settings: WindowsSettings, prefix: str, executable: str) -> dict[str, str]:
    """Environment for the Wine runner."""
    env = {
        "WINEPREFIX": prefix,
        "GAME_EXECUTABLE": executable,
        "WINEDEBUG": settings.winedebug,
    }
    if settings.dll_overrides:
        env["WINEDLLOVERRIDES"] = ";".join(
            f"{dll}={mode}" for dll, mode in sorted(settings.dll_overrides.items())
        )
    if settings.compat_mode:
        env["WINE_COMPAT_MODE"] = settings.compat_mode
    if settings.d3d_renderer:
        env["WINE_D3D_RENDERER"] = settings.d3d_renderer
    if settings.virtual_desktop:
        env["WINE_VIRTUAL_DESKTOP"] = settings.virtual_desktop
    if settings.dxvk:
        env["INSTALL_DXVK"] = "true"
        if settings.dxvk_hud:
            env["DXVK_HUD"] = settings.dxvk_hud
    if settings.winetricks:
        env["WINE_WINETRICKS"] = " ".join(settings.winetricks)
    if settings.registry:
        env["WINE_REGISTRY_SETTINGS"] = json.dumps(
            [r.model_dump() for r in settings.registry],
            separators=(",", ":"),
        )
    return env
