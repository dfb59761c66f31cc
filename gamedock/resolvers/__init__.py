"""Host-state resolvers feeding the launch builder."""

from gamedock.resolvers.devices import DeviceAccessResolver
from gamedock.resolvers.display import DisplayConfigurator
from gamedock.resolvers.host_paths import MountPoint, resolve_host_path
from gamedock.resolvers.joysticks import format_joystick_devices, parse_joystick_devices
from gamedock.resolvers.volumes import VolumeResolver

__all__ = [
    "DeviceAccessResolver",
    "DisplayConfigurator",
    "MountPoint",
    "VolumeResolver",
    "format_joystick_devices",
    "parse_joystick_devices",
    "resolve_host_path",
]
