"""Live mount table reading.

``/proc/mounts`` gives device, mount point and filesystem type;
``/proc/self/mountinfo`` gives the source root of each mount, which for a
Docker named volume is ``/var/lib/docker/volumes/<name>/_data``. Nothing
here is cached: every ``read()`` re-reads the kernel tables.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger()

_VOLUME_SOURCE_RE = re.compile(r"/var/lib/docker/volumes/([^/]+)/_data")
_OCTAL_ESCAPE_RE = re.compile(r"\\([0-7]{3})")

SYSTEM_PATHS = frozenset(
    {"/", "/proc", "/sys", "/dev", "/run", "/etc", "/var/run", "/tmp/.X11-unix"}
)
SYSTEM_PREFIXES = ("/proc/", "/sys/", "/dev/", "/etc/")
PSEUDO_FILESYSTEMS = frozenset(
    {
        "proc",
        "sysfs",
        "devpts",
        "tmpfs",
        "cgroup",
        "cgroup2",
        "securityfs",
        "pstore",
        "debugfs",
        "tracefs",
        "fusectl",
        "mqueue",
        "hugetlbfs",
        "autofs",
        "devtmpfs",
        "configfs",
        "bpf",
        "nsfs",
    }
)


@dataclass
class MountEntry:
    """One line of the mount table."""

    device: str
    mount_path: str
    fs_type: str
    volume_name: str | None = None

    @property
    def is_system(self) -> bool:
        if self.mount_path in SYSTEM_PATHS:
            return True
        if self.mount_path.startswith(SYSTEM_PREFIXES):
            return True
        return self.fs_type in PSEUDO_FILESYSTEMS


def _unescape(field: str) -> str:
    """Decode the kernel's octal escapes (\\040 for space, ...)."""
    return _OCTAL_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 8)), field)


def parse_mounts(text: str) -> list[MountEntry]:
    """Parse ``/proc/mounts`` content.

    A path mounted more than once is shadowed by its latest mount, so only
    the last entry for a path is kept, in the position it was listed.
    """
    entries: dict[str, MountEntry] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        mount_path = _unescape(parts[1])
        entries.pop(mount_path, None)
        entries[mount_path] = MountEntry(
            device=_unescape(parts[0]), mount_path=mount_path, fs_type=parts[2]
        )
    return list(entries.values())


def parse_mountinfo_volume_names(text: str) -> dict[str, str]:
    """Map mount point -> Docker volume name from ``/proc/self/mountinfo``.

    The volume path shows up in the root field for bind-style volume mounts
    and in the source field for some storage drivers; both are checked.
    """
    result: dict[str, str] = {}
    for line in text.splitlines():
        parts = line.split()
        if "-" not in parts:
            continue
        separator = parts.index("-")
        if separator < 5:
            continue
        root = _unescape(parts[3])
        mount_path = _unescape(parts[4])
        source = _unescape(parts[separator + 2]) if len(parts) > separator + 2 else ""
        for candidate in (root, source):
            match = _VOLUME_SOURCE_RE.search(candidate)
            if match:
                result[mount_path] = match.group(1)
                break
    return result


class MountTable:
    """Reads the live mount table from procfs (paths injectable for tests)."""

    def __init__(
        self,
        mounts_file: str | Path = "/proc/mounts",
        mountinfo_file: str | Path = "/proc/self/mountinfo",
    ) -> None:
        self._mounts_file = Path(mounts_file)
        self._mountinfo_file = Path(mountinfo_file)

    def read(self) -> list[MountEntry]:
        """Return current mount entries with volume names attached."""
        entries = parse_mounts(self._mounts_file.read_text(encoding="utf-8"))

        try:
            mountinfo = self._mountinfo_file.read_text(encoding="utf-8")
        except OSError as e:
            # Without volume names no mount is recognised as a first-class volume
            logger.warning("mounts.mountinfo_unreadable", path=str(self._mountinfo_file), error=str(e))
            mountinfo = ""

        names = parse_mountinfo_volume_names(mountinfo)
        for entry in entries:
            entry.volume_name = names.get(entry.mount_path)
        return entries
