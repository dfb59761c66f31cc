"""Emulator command construction.

Emulator launch commands never carry a reset-to-defaults flag. VICE's
``-default`` restores factory resources, which wipes the per-port joystick
assignment (JoyDevice1/JoyDevice2) even on a fresh install, so every form of
it is removed from user-supplied arguments, and a binary or driver name that
is one is rejected.

The joystick an operator assigned to the platform (or to its arcade,
console or computer category) is exported as JOYSTICK_DEVICE_ID and
JOYSTICK_DEVICE_NAME for the runner's input mapping.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from gamedock.errors import ValidationError
from gamedock.models.catalog import EmulatorSettings
from gamedock.models.launch import JoystickAssignment

RESET_DEFAULTS_FLAGS = frozenset({"-default", "--default", "-defaults", "--defaults"})

VICE_BINARIES = {
    "c64": "x64sc",
    "c128": "x128",
    "vic20": "xvic",
    "plus4": "xplus4",
    "pet": "xpet",
}

AMIGA_MODELS = {
    "amiga": "A500",
    "amiga500": "A500",
    "amiga500plus": "A500+",
    "amiga600": "A600",
    "amiga1200": "A1200",
    "amiga3000": "A3000",
    "amiga4000": "A4000",
    "cd32": "CD32",
}

RETROARCH_CORES = {
    "nes": "nestopia",
    "snes": "snes9x",
    "mame": "mame",
}


# Joystick assignments fall back from platform id to one of these categories
ARCADE_PLATFORMS = frozenset({"mame", "arcade"})
COMPUTER_PLATFORMS = frozenset({*VICE_BINARIES, *AMIGA_MODELS, "dos", "pc"})


@dataclass
class EmulatorCommand:
    """Command plus emulator-specific environment."""

    command: list[str]
    env: dict[str, str] = field(default_factory=dict)


def strip_reset_flags(args: list[str]) -> list[str]:
    """Drop reset-to-defaults flags (including ``-default=...`` forms)."""
    return [a for a in args if a.split("=", 1)[0] not in RESET_DEFAULTS_FLAGS]


def infer_emulator(platform_id: str, settings: EmulatorSettings) -> str:
    """Emulator from settings, else from well-known platform ids."""
    if settings.emulator:
        return settings.emulator
    if platform_id in VICE_BINARIES:
        return "vice"
    if platform_id in AMIGA_MODELS:
        return "fs-uae"
    return "retroarch"


def joystick_category(platform_id: str, emulator: str) -> str:
    if platform_id in ARCADE_PLATFORMS or emulator == "mame":
        return "arcade"
    if platform_id in COMPUTER_PLATFORMS or emulator in ("vice", "fs-uae"):
        return "computer"
    return "console"


def select_joystick(
    platform_id: str,
    emulator: str,
    assignments: Mapping[str, JoystickAssignment],
) -> JoystickAssignment | None:
    """Assignment for the platform id, else for its category."""
    return assignments.get(platform_id) or assignments.get(joystick_category(platform_id, emulator))


def build_emulator_command(
    platform_id: str,
    settings: EmulatorSettings,
    rom_path: str,
    joysticks: Mapping[str, JoystickAssignment] | None = None,
) -> EmulatorCommand:
    """Build the command for ``rom_path`` (a container path under /roms).

    Raises:
        ValidationError: The binary or MAME driver name is itself a
            reset-to-defaults flag.
    """
    emulator = infer_emulator(platform_id, settings)
    extra = strip_reset_flags(list(settings.arguments))

    if emulator == "retroarch":
        core = settings.core or RETROARCH_CORES.get(platform_id, "mame")
        # The runner entrypoint starts retroarch with the core; argv is the content
        built = EmulatorCommand(
            command=[*extra, rom_path],
            env={
                "RETROARCH_CORE": core,
                "RETROARCH_FULLSCREEN": "true" if settings.fullscreen else "false",
            },
        )
    elif emulator == "vice":
        binary = settings.model or VICE_BINARIES.get(platform_id, "x64sc")
        built = EmulatorCommand(command=[binary, *extra, rom_path])
    elif emulator == "fs-uae":
        model = settings.model or AMIGA_MODELS.get(platform_id, "A500")
        built = EmulatorCommand(
            command=["fs-uae", *extra, rom_path],
            env={"FSUAE_AMIGA_MODEL": model},
        )
    else:
        # mame: the driver name is the ROM set's file stem, looked up in -rompath
        rom = PurePosixPath(rom_path)
        built = EmulatorCommand(command=["mame", "-rompath", str(rom.parent), *extra, rom.stem])

    if strip_reset_flags(built.command) != built.command:
        raise ValidationError(
            f"Emulator command for {platform_id} would reset the emulator to defaults",
            details={"command": built.command},
        )

    joystick = select_joystick(platform_id, emulator, joysticks or {})
    if joystick is not None:
        built.env["JOYSTICK_DEVICE_ID"] = joystick.device_id
        built.env["JOYSTICK_DEVICE_NAME"] = joystick.device_name
    return built
