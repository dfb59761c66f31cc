"""Launch-time value types.

These are rebuilt from live host state on every launch and never
persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field


class VolumeCategory(str, Enum):
    """First-class volume categories."""

    CORE = "core"
    ROMS = "roms"
    CACHE = "cache"
    INSTALLED = "installed"


# Conventional container mount paths; installed volumes mount at
# INSTALLED_ROOT/<suffix>.
CATEGORY_MOUNT_PATHS: dict[VolumeCategory, str] = {
    VolumeCategory.CORE: "/data",
    VolumeCategory.ROMS: "/roms",
    VolumeCategory.CACHE: "/cache",
}
INSTALLED_ROOT = "/installed"


def conventional_mount_path(category: VolumeCategory, suffix: str | None = None) -> str:
    """Fixed container path for a category."""
    if category == VolumeCategory.INSTALLED:
        return f"{INSTALLED_ROOT}/{suffix}"
    return CATEGORY_MOUNT_PATHS[category]


@dataclass
class VolumeStatus:
    """Detection status of one first-class volume."""

    category: VolumeCategory
    backing_name: str
    mount_path: str
    detected: bool = False
    suffix: str | None = None
    conformant: bool = True
    storage_type: str | None = None
    friendly_name: str | None = None

    @property
    def expected_mount_path(self) -> str:
        return conventional_mount_path(self.category, self.suffix)


@dataclass
class VolumeReport:
    """Per-category volume status plus diagnostics."""

    core: VolumeStatus
    roms: VolumeStatus
    cache: VolumeStatus
    installed: list[VolumeStatus] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def get(self, category: VolumeCategory, suffix: str | None = None) -> VolumeStatus | None:
        """Look up a category (and suffix for installed volumes)."""
        if category == VolumeCategory.CORE:
            return self.core
        if category == VolumeCategory.ROMS:
            return self.roms
        if category == VolumeCategory.CACHE:
            return self.cache
        for status in self.installed:
            if status.suffix == suffix:
                return status
        return None

    def detected_backing_names(self) -> set[str]:
        """Backing names of every detected volume."""
        statuses = [self.core, self.roms, self.cache, *self.installed]
        return {s.backing_name for s in statuses if s.detected}


class DisplayProtocol(str, Enum):
    """Display protocol forwarded into the container."""

    WAYLAND = "wayland"
    X11 = "x11"
    NONE = "none"


@dataclass
class DisplayBinding:
    """Binding needed to forward the host display into a container."""

    protocol: DisplayProtocol
    host_socket_path: str | None = None
    container_socket_path: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    binds: list[str] = field(default_factory=list)
    ipc_mode: str | None = None
    security_opts: list[str] = field(default_factory=list)

    def describe(self) -> dict[str, str | None]:
        """Summary stored on the session record."""
        return {
            "protocol": self.protocol.value,
            "host_socket_path": self.host_socket_path,
            "container_socket_path": self.container_socket_path,
        }


@dataclass
class JoystickDevice:
    """A joystick found in the input-device registry."""

    name: str
    event_device: str
    js_device: str


@dataclass
class JoystickAssignment:
    """Joystick an operator assigned to a platform or platform category."""

    # Event handler name, e.g. "event11"
    device_id: str
    device_name: str = "Unknown Device"


@dataclass
class DeviceBinding:
    """GPU, audio and input exposure for one session."""

    gpu_device_paths: list[str] = field(default_factory=list)
    gpu_vendor: str | None = None
    shared_memory_bytes: int | None = None
    audio_socket_path: str | None = None
    audio_cookie_path: str | None = None
    audio_device_paths: list[str] = field(default_factory=list)
    input_device_paths: list[str] = field(default_factory=list)
    input_directory_bind: bool = False
    cgroup_device_rules: list[str] = field(default_factory=list)
    joystick_event_devices: list[str] = field(default_factory=list)
    group_add: list[str] = field(default_factory=list)
    binds: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    @property
    def device_paths(self) -> list[str]:
        return [*self.gpu_device_paths, *self.audio_device_paths, *self.input_device_paths]


@dataclass
class LaunchSpec:
    """Engine-agnostic description of one container invocation."""

    image: str
    binds: list[str] = field(default_factory=list)
    devices: list[str] = field(default_factory=list)
    device_cgroup_rules: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    network_mode: str | None = None
    ipc_mode: str | None = None
    security_opts: list[str] = field(default_factory=list)
    working_dir: str | None = None
    command: list[str] = field(default_factory=list)
    shm_size: int | None = None
    group_add: list[str] = field(default_factory=list)


@dataclass
class BuildResult:
    """A built LaunchSpec plus non-fatal findings for display."""

    spec: LaunchSpec
    warnings: list[str] = field(default_factory=list)


class StreamingArtifact(BaseModel):
    """Pre-built sink configuration handed over by the streaming pipeline."""

    env: dict[str, str] = Field(default_factory=dict)
    binds: list[str] = Field(default_factory=list)


# Session ids name per-session directories on the host
SESSION_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class SessionRequest(BaseModel):
    """Launch request."""

    game_id: str
    platform_id: str | None = None
    session_id: str | None = Field(default=None, pattern=SESSION_ID_PATTERN)
    streaming: StreamingArtifact | None = None
