"""Joystick discovery from the kernel input-device registry.

Containers have no device-management daemon, so the in-container input
library is told explicitly which event devices are joysticks. The registry
(``/proc/bus/input/devices``) is a sequence of blank-line separated blocks:

    I: Bus=0003 Vendor=045e Product=028e Version=0110
    N: Name="Microsoft X-Box 360 pad"
    H: Handlers=event18 js0

A block is a joystick only if its handler line has both a ``jsN`` and an
``eventN`` token.


Operators pin a joystick to a platform id or to a category (arcade,
console, computer); JoystickAssignments keeps those choices in the
``joysticks`` metadata namespace.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from gamedock.models.launch import JoystickAssignment, JoystickDevice
from gamedock.stores.metadata import MetadataStore

_JS_TOKEN = re.compile(r"^js\d+$")
_EVENT_TOKEN = re.compile(r"^event\d+$")
_NAME_RE = re.compile(r'^N:\s*Name="(.*)"\s*$')

INPUT_DEVICE_DIR = "/dev/input"
METADATA_NAMESPACE = "joysticks"


def _split_blocks(lines: Iterable[str]) -> list[list[str]]:
    blocks: list[list[str]] = []
    current: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip():
            if current:
                blocks.append(current)
                current = []
            continue
        current.append(line)
    if current:
        blocks.append(current)
    return blocks


def _parse_block(block: list[str]) -> JoystickDevice | None:
    name = ""
    handlers: list[str] = []
    for line in block:
        name_match = _NAME_RE.match(line)
        if name_match:
            name = name_match.group(1)
        elif line.startswith("H:"):
            _, _, value = line.partition("=")
            handlers = value.split()

    js = next((h for h in handlers if _JS_TOKEN.match(h)), None)
    event = next((h for h in handlers if _EVENT_TOKEN.match(h)), None)
    if js is None or event is None:
        return None
    return JoystickDevice(
        name=name,
        event_device=f"{INPUT_DEVICE_DIR}/{event}",
        js_device=f"{INPUT_DEVICE_DIR}/{js}",
    )


def parse_joystick_devices(lines: Iterable[str]) -> list[JoystickDevice]:
    """Return joysticks in registry order."""
    devices: list[JoystickDevice] = []
    for block in _split_blocks(lines):
        device = _parse_block(block)
        if device is not None:
            devices.append(device)
    return devices


def format_joystick_devices(devices: Iterable[JoystickDevice]) -> str:
    """Comma-joined event device paths (SDL_JOYSTICK_DEVICE format)."""
    return ",".join(d.event_device for d in devices)


class JoystickAssignments:
    """Joystick assignments keyed by platform id or category."""

    def __init__(self, store: MetadataStore) -> None:
        self._store = store

    def load(self) -> dict[str, JoystickAssignment]:
        assignments: dict[str, JoystickAssignment] = {}
        for key, entry in self._store.load(METADATA_NAMESPACE).items():
            if not isinstance(entry, dict) or not entry.get("device_id"):
                continue
            assignments[key] = JoystickAssignment(
                device_id=str(entry["device_id"]),
                device_name=str(entry.get("device_name") or "Unknown Device"),
            )
        return assignments

    def assign(self, key: str, device_id: str, device_name: str | None = None) -> JoystickAssignment:
        assignment = JoystickAssignment(device_id=device_id, device_name=device_name or "Unknown Device")
        self._store.update(
            METADATA_NAMESPACE,
            key,
            {"device_id": assignment.device_id, "device_name": assignment.device_name},
        )
        return assignment

    def unassign(self, key: str) -> bool:
        data = self._store.load(METADATA_NAMESPACE)
        if key not in data:
            return False
        del data[key]
        self._store.save(METADATA_NAMESPACE, data)
        return True
