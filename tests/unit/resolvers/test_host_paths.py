import pytest

from gamedock.resolvers.host_paths import MountPoint, resolve_host_path

MOUNTS = [
    MountPoint(source="/var/lib/docker/volumes/gamedock_roms/_data", destination="/roms", type="volume"),
    MountPoint(source="/mnt/fast/nes", destination="/roms/nes"),
    MountPoint(source="/var/lib/docker/volumes/gamedock_core/_data", destination="/data", type="volume"),
]


@pytest.mark.parametrize(
    "container_path,expected",
    [
        ("/roms", "/var/lib/docker/volumes/gamedock_roms/_data"),
        ("/roms/snes/mario.sfc", "/var/lib/docker/volumes/gamedock_roms/_data/snes/mario.sfc"),
        ("/roms/nes/zelda.nes", "/mnt/fast/nes/zelda.nes"),
        ("/roms/nes", "/mnt/fast/nes"),
        ("/data/saves/", "/var/lib/docker/volumes/gamedock_core/_data/saves"),
        ("roms/a.zip", "/var/lib/docker/volumes/gamedock_roms/_data/a.zip"),
    ],
)
def test_longest_mount_wins(container_path, expected):
    assert resolve_host_path(container_path, MOUNTS) == expected


def test_prefix_is_matched_on_segment_boundary():
    assert resolve_host_path("/romset/a.zip", MOUNTS) is None


def test_uncovered_path():
    assert resolve_host_path("/opt/game", MOUNTS) is None
    assert resolve_host_path("/roms", []) is None


def test_root_mount_covers_everything():
    mounts = [MountPoint(source="/srv/rootfs", destination="/")]

    assert resolve_host_path("/etc/hosts", mounts) == "/srv/rootfs/etc/hosts"


@pytest.mark.parametrize(
    "container_path,expected",
    [
        ("/roms/../data/saves/x", "/var/lib/docker/volumes/gamedock_core/_data/saves/x"),
        ("/roms/nes/../snes/a.sfc", "/var/lib/docker/volumes/gamedock_roms/_data/snes/a.sfc"),
        ("/roms/./nes//zelda.nes", "/mnt/fast/nes/zelda.nes"),
        ("/../../roms/a.zip", "/var/lib/docker/volumes/gamedock_roms/_data/a.zip"),
    ],
)
def test_dot_segments_are_collapsed(container_path, expected):
    assert resolve_host_path(container_path, MOUNTS) == expected


def test_parent_segment_leaves_the_deeper_mount():
    # /roms/nes/.. is /roms, which the nes mount does not cover
    assert resolve_host_path("/roms/nes/..", MOUNTS) == "/var/lib/docker/volumes/gamedock_roms/_data"
    assert resolve_host_path("/data/../opt", MOUNTS) is None
