"""LaunchSpecBuilder.

``build_launch_spec`` is a pure function: the same inputs always give the
same LaunchSpec. It holds all platform-type branching and fails closed:
a category the platform needs that is not detected raises
MissingVolumeError, and no host path is ever substituted for it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath

from gamedock.errors import MissingVolumeError, ValidationError
from gamedock.launch.emulators import build_emulator_command
from gamedock.launch.settings import resolve_settings
from gamedock.launch.windows import (
    clean_arguments,
    to_prefix_path,
    wine_command,
    wine_environment,
)
from gamedock.models.catalog import (
    EmulatorSettings,
    Game,
    NativeSettings,
    Platform,
    WindowsSettings,
)
from gamedock.models.launch import (
    BuildResult,
    DeviceBinding,
    DisplayBinding,
    JoystickAssignment,
    LaunchSpec,
    SessionRequest,
    VolumeCategory,
    VolumeReport,
    VolumeStatus,
    conventional_mount_path,
)

# Where the core volume keeps per-game state
SAVES_DIR = "/data/saves"
BIOS_DIR = "/data/bios"
EMULATOR_WORKDIR = "/home/gameuser"


@dataclass
class BuildOptions:
    """Deployment values that are not part of the game or platform."""

    puid: int = 1000
    pgid: int = 1000
    network_mode: str | None = "bridge"


def _require(
    volumes: VolumeReport,
    category: VolumeCategory,
    suffix: str | None = None,
) -> VolumeStatus:
    status = volumes.get(category, suffix)
    if status is None or not status.detected:
        raise MissingVolumeError(
            category.value,
            suffix=suffix,
            backing_name=status.backing_name if status else None,
            mount_path=conventional_mount_path(category, suffix),
        )
    return status


def _bind(status: VolumeStatus, mode: str) -> str:
    # Sibling containers see the volume by name at its conventional path
    return f"{status.backing_name}:{status.expected_mount_path}:{mode}"


def _game_dir(status: VolumeStatus, game: Game) -> PurePosixPath:
    base = PurePosixPath(status.expected_mount_path)
    if game.storage.path:
        return base / game.storage.path.strip("/")
    return base


def exclusive_resource_key(game: Game, platform: Platform) -> str | None:
    """Key of the exclusive write mount a launch would hold, if any.

    Only Windows titles write into their installation (the Wine prefix);
    two sessions on the same installation would corrupt it.
    """
    if platform.type != "windows" or game.storage.category != "installed":
        return None
    path = game.storage.path.strip("/")
    return f"installed/{game.storage.suffix}:{path}"


def build_launch_spec(
    game: Game,
    platform: Platform,
    request: SessionRequest,
    volumes: VolumeReport,
    display: DisplayBinding,
    devices: DeviceBinding,
    *,
    options: BuildOptions | None = None,
    joysticks: Mapping[str, JoystickAssignment] | None = None,
) -> BuildResult:
    """Combine catalog records and resolver outputs into a LaunchSpec.

    Raises:
        MissingVolumeError: First required category that is not detected.
        ValidationError: Game/platform records cannot be launched as given.
    """
    options = options or BuildOptions()
    if not request.session_id:
        raise ValidationError("session_id is required to build a launch spec")

    settings = resolve_settings(platform, game)
    warnings: list[str] = []

    core = _require(volumes, VolumeCategory.CORE)
    spec = LaunchSpec(image=platform.image, network_mode=options.network_mode)

    if isinstance(settings, WindowsSettings):
        _build_windows(spec, game, settings, volumes)
    elif isinstance(settings, EmulatorSettings):
        _build_emulator(spec, game, platform, settings, volumes, warnings, joysticks or {})
    else:
        _build_native(spec, game, settings, volumes, core)

    # core is shared state (saves, bios); native games stored on core reuse its bind
    core_bind = _bind(core, "rw")
    if not any(b.startswith(f"{core.backing_name}:") for b in spec.binds):
        spec.binds.insert(0, core_bind)

    if volumes.cache.detected:
        spec.binds.append(_bind(volumes.cache, "rw"))
        spec.env.setdefault("XDG_CACHE_HOME", f"{volumes.cache.expected_mount_path}/{game.id}")
    else:
        warnings.append(
            f"cache volume '{volumes.cache.backing_name}' not detected; caches will not persist"
        )

    used = {b.split(":", 1)[0] for b in spec.binds}
    for status in [volumes.core, volumes.roms, volumes.cache, *volumes.installed]:
        if status.detected and not status.conformant and status.backing_name in used:
            warnings.append(
                f"volume '{status.backing_name}' is mounted at {status.mount_path} on this host, "
                f"the game container uses {status.expected_mount_path}"
            )

    base_env = {
        "GAME_ID": game.id,
        "SESSION_ID": request.session_id,
        "SAVES_PATH": f"{SAVES_DIR}/{game.id}",
        "PUID": str(options.puid),
        "PGID": str(options.pgid),
    }
    spec.env = {**base_env, **spec.env, **settings.env}

    _apply_display(spec, display)
    _apply_devices(spec, devices)

    if request.streaming is not None:
        spec.env.update(request.streaming.env)
        spec.binds.extend(request.streaming.binds)

    return BuildResult(spec=spec, warnings=warnings)


def _build_native(
    spec: LaunchSpec,
    game: Game,
    settings: NativeSettings,
    volumes: VolumeReport,
    core: VolumeStatus,
) -> None:
    category = VolumeCategory(game.storage.category)
    status = _require(volumes, category, game.storage.suffix)
    game_dir = _game_dir(status, game)

    launch_command = settings.launch_command or game.file
    if not launch_command:
        raise ValidationError(f"Game '{game.id}' has no launch command")

    executable = PurePosixPath(launch_command)
    if not executable.is_absolute():
        executable = game_dir / executable

    # A game stored on core shares core's read-write bind
    if status.backing_name != core.backing_name:
        spec.binds.append(_bind(status, "ro"))
    spec.command = [str(executable), *clean_arguments([*settings.arguments, *game.arguments])]
    spec.working_dir = str(game_dir)


def _build_windows(
    spec: LaunchSpec,
    game: Game,
    settings: WindowsSettings,
    volumes: VolumeReport,
) -> None:
    if game.storage.category != "installed":
        raise ValidationError(
            f"Windows game '{game.id}' must be stored on an installed volume",
            details={"category": game.storage.category},
        )
    status = _require(volumes, VolumeCategory.INSTALLED, game.storage.suffix)
    install_dir = _game_dir(status, game)
    prefix = install_dir / settings.prefix.strip("/")

    executable_source = settings.executable or game.file
    if not executable_source:
        raise ValidationError(f"Windows game '{game.id}' has no executable")
    executable = to_prefix_path(executable_source, str(prefix))

    spec.binds.append(_bind(status, "rw"))
    spec.env.update(wine_environment(settings, str(prefix), executable))
    spec.command = wine_command(clean_arguments([*settings.arguments, *game.arguments]))
    spec.working_dir = str(PurePosixPath(executable).parent)


def _build_emulator(
    spec: LaunchSpec,
    game: Game,
    platform: Platform,
    settings: EmulatorSettings,
    volumes: VolumeReport,
    warnings: list[str],
    joysticks: Mapping[str, JoystickAssignment],
) -> None:
    if game.storage.category != "roms":
        raise ValidationError(
            f"Emulator game '{game.id}' must be stored on the roms volume",
            details={"category": game.storage.category},
        )
    if not game.file:
        raise ValidationError(f"Emulator game '{game.id}' has no ROM file")

    roms = _require(volumes, VolumeCategory.ROMS)
    rom_path = _game_dir(roms, game) / game.file
    if not platform.supports(game.file):
        warnings.append(
            f"'{game.file}' does not match {platform.id} extensions "
            f"{', '.join(platform.supported_extensions)}"
        )

    settings = settings.model_copy(
        update={"arguments": clean_arguments([*settings.arguments, *game.arguments])}
    )
    built = build_emulator_command(platform.id, settings, str(rom_path), joysticks)

    spec.binds.append(_bind(roms, "ro"))
    spec.command = built.command
    spec.working_dir = EMULATOR_WORKDIR
    spec.env.update(
        {
            "RETROARCH_SYSTEM_DIR": f"{BIOS_DIR}/{platform.id}",
            "BIOS_PATH": f"{BIOS_DIR}/{platform.id}",
            "RETROARCH_SAVES_DIR": f"{SAVES_DIR}/{game.id}/saves",
            "RETROARCH_STATES_DIR": f"{SAVES_DIR}/{game.id}/states",
        }
    )
    spec.env.update(built.env)


def _apply_display(spec: LaunchSpec, display: DisplayBinding) -> None:
    spec.env.update(display.env)
    spec.binds.extend(display.binds)
    if display.ipc_mode:
        spec.ipc_mode = display.ipc_mode
    spec.security_opts.extend(o for o in display.security_opts if o not in spec.security_opts)


def _apply_devices(spec: LaunchSpec, devices: DeviceBinding) -> None:
    spec.env.update(devices.env)
    spec.binds.extend(devices.binds)
    spec.devices.extend(devices.device_paths)
    spec.device_cgroup_rules.extend(devices.cgroup_device_rules)
    spec.group_add.extend(devices.group_add)
    if devices.shared_memory_bytes:
        spec.shm_size = devices.shared_memory_bytes
