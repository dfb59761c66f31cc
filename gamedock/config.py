"""Gamedock configuration management.

Configuration sources (in priority order):
1. Environment variables (GAMEDOCK_ prefix, ``__`` for nesting)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from gamedock.models.catalog import EmulatorSettings, Platform, WindowsSettings


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8300


class DatabaseConfig(BaseModel):
    """Database configuration."""

    url: str = "sqlite+aiosqlite:///./gamedock.db"
    echo: bool = False


class DockerConfig(BaseModel):
    """Docker engine client configuration."""

    socket: str = "unix:///var/run/docker.sock"
    network_mode: str = "bridge"
    container_name_prefix: str = "gamedock-session-"
    stop_timeout: int = 10


class VolumeConfig(BaseModel):
    """First-class volume detection."""

    # Backing names are <prefix>_core, <prefix>_roms, <prefix>_cache,
    # <prefix>_installed_<suffix>
    prefix: str = "gamedock"
    mounts_file: str = "/proc/mounts"
    mountinfo_file: str = "/proc/self/mountinfo"
    # Directory of the JSON metadata store (friendly names, storage types,
    # joystick assignments)
    metadata_dir: str = "/data/storage"


class DisplayConfig(BaseModel):
    """Display protocol detection and forwarding."""

    runtime_root: str = "/run/user"
    x11_socket_dir: str = "/tmp/.X11-unix"
    container_runtime_dir: str = "/run/user/1000"
    container_home: str = "/home/gameuser"

    # Socket wait backoff
    wait_initial_interval: float = 0.1
    wait_max_interval: float = 2.0
    wait_backoff_factor: float = 2.0
    wait_timeout: float = 10.0


class DeviceConfig(BaseModel):
    """GPU, audio and input passthrough."""

    gpu: bool = True
    audio: bool = True
    input: bool = True

    dri_path: str = "/dev/dri"
    nvidia_device_glob: str = "/dev/nvidia*"
    drm_class_dir: str = "/sys/class/drm"
    shm_size: str = "2g"

    snd_path: str = "/dev/snd"
    pulse_socket_candidates: list[str] = Field(
        default_factory=lambda: [
            "${XDG_RUNTIME_DIR}/pulse",
            "/run/user/1000/pulse",
            "/tmp/pulse-socket",
        ]
    )
    pulse_cookie_path: str = "~/.config/pulse/cookie"
    # Cookie copies land in <cookie_staging_dir>/<session_id>/cookie
    cookie_staging_dir: str = "/tmp/gamedock/pulse"
    pulse_sink: str | None = None
    container_home: str = "/home/gameuser"
    container_pulse_dir: str = "/run/user/1000/pulse"

    input_dir: str = "/dev/input"
    uinput_path: str = "/dev/uinput"
    udev_dir: str = "/run/udev"
    input_registry: str = "/proc/bus/input/devices"


class SessionConfig(BaseModel):
    """Session launch behavior."""

    puid: int = 1000
    pgid: int = 1000
    # Wait for a display socket before failing a launch with no headless path
    wait_for_display: bool = True


class GCTaskConfig(BaseModel):
    """Configuration for an individual GC task."""

    enabled: bool = True


class StuckSessionGCConfig(GCTaskConfig):
    """Sessions stuck in starting past this timeout are swept."""

    timeout_seconds: int = 120


class GCConfig(BaseModel):
    """Orphan sweep configuration."""

    enabled: bool = True
    run_on_startup: bool = True
    interval_seconds: int = 60

    # Identifies containers created by this instance
    instance_id: str | None = None

    stuck_session: StuckSessionGCConfig = Field(default_factory=StuckSessionGCConfig)
    exited_session: GCTaskConfig = Field(default_factory=GCTaskConfig)
    cookie_staging: GCTaskConfig = Field(default_factory=GCTaskConfig)
    # Strict: only removes fully labelled containers of this instance
    orphan_container: GCTaskConfig = Field(
        default_factory=lambda: GCTaskConfig(enabled=False)
    )

    def get_instance_id(self) -> str:
        """Instance id, defaulting to the hostname."""
        if self.instance_id:
            return self.instance_id
        return os.environ.get("HOSTNAME", "gamedock")


class CatalogConfig(BaseModel):
    """Game catalog file."""

    path: str = "catalog.yaml"


def _default_platforms() -> list[Platform]:
    return [
        Platform(
            id="linux-native",
            name="Linux",
            type="native",
            image="ghcr.io/gamedock/runner-linux-native:latest",
        ),
        Platform(
            id="windows-wine",
            name="Windows (Wine)",
            type="windows",
            image="ghcr.io/gamedock/runner-wine:latest",
            supported_extensions=[".exe", ".bat", ".lnk"],
            default_settings=WindowsSettings(),
        ),
        Platform(
            id="nes",
            name="Nintendo Entertainment System",
            type="emulator",
            image="ghcr.io/gamedock/runner-retroarch:latest",
            supported_extensions=[".nes", ".zip"],
            default_settings=EmulatorSettings(emulator="retroarch", core="nestopia"),
        ),
        Platform(
            id="snes",
            name="Super Nintendo",
            type="emulator",
            image="ghcr.io/gamedock/runner-retroarch:latest",
            supported_extensions=[".sfc", ".smc", ".zip"],
            default_settings=EmulatorSettings(emulator="retroarch", core="snes9x"),
        ),
        Platform(
            id="c64",
            name="Commodore 64",
            type="emulator",
            image="ghcr.io/gamedock/runner-vice:latest",
            supported_extensions=[".d64", ".t64", ".prg", ".crt", ".tap"],
            default_settings=EmulatorSettings(emulator="vice"),
        ),
        Platform(
            id="amiga",
            name="Commodore Amiga",
            type="emulator",
            image="ghcr.io/gamedock/runner-fs-uae:latest",
            supported_extensions=[".adf", ".lha", ".ipf", ".hdf"],
            default_settings=EmulatorSettings(emulator="fs-uae"),
        ),
        Platform(
            id="mame",
            name="Arcade (MAME)",
            type="emulator",
            image="ghcr.io/gamedock/runner-mame:latest",
            supported_extensions=[".zip", ".7z"],
            default_settings=EmulatorSettings(emulator="mame"),
        ),
    ]


class Settings(BaseSettings):
    """Gamedock application settings."""

    model_config = SettingsConfigDict(
        env_prefix="GAMEDOCK_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    volumes: VolumeConfig = Field(default_factory=VolumeConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    devices: DeviceConfig = Field(default_factory=DeviceConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    gc: GCConfig = Field(default_factory=GCConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)

    platforms: list[Platform] = Field(default_factory=_default_platforms)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Config file values arrive as init kwargs; environment wins over them
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    def get_platform(self, platform_id: str) -> Platform | None:
        """Get platform by ID."""
        for platform in self.platforms:
            if platform.id == platform_id:
                return platform
        return None


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. GAMEDOCK_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/gamedock/config.yaml
    """
    config_paths = [
        os.environ.get("GAMEDOCK_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/gamedock/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    File values are passed as init kwargs; environment variables override
    them.
    """
    file_config = _load_config_file()
    return Settings(**file_config)
