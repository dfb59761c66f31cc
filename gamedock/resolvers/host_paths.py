"""HostPathResolver - container path to host path.

For diagnostics and backup tooling only. The live mount table can change
between calls, so results must never feed access-control decisions.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import PurePosixPath


@dataclass
class MountPoint:
    """One mount as reported by the engine's inspect call."""

    source: str
    destination: str
    type: str = "bind"
    name: str | None = None
    rw: bool = True


def _normalize(path: str) -> PurePosixPath:
    # ".." is collapsed lexically and cannot climb above "/"
    return PurePosixPath(posixpath.normpath("/" + path.lstrip("/")))


def resolve_host_path(container_path: str, mounts: list[MountPoint]) -> str | None:
    """Map ``container_path`` onto the host using the longest matching mount.

    Matching happens on whole path segments: ``/roms`` covers ``/roms/nes``
    but not ``/romset``. Returns None when no mount covers the path.
    """
    target = _normalize(container_path)

    best: MountPoint | None = None
    best_depth = -1
    for mount in mounts:
        destination = _normalize(mount.destination)
        if target != destination and destination not in target.parents:
            continue
        depth = len(destination.parts)
        if depth > best_depth:
            best, best_depth = mount, depth

    if best is None:
        return None

    relative = target.relative_to(_normalize(best.destination))
    host = PurePosixPath(best.source)
    if str(relative) != ".":
        host = host / relative
    return str(host)
