"""Unit tests for DeviceAccessResolver against a fake host tree."""

from __future__ import annotations

import os
import shutil
import socket
import stat
import tempfile

import pytest

from gamedock.config import DeviceConfig
from gamedock.errors import DeviceAccessError, ValidationError
from gamedock.resolvers.devices import INPUT_CGROUP_RULE, DeviceAccessResolver

XBOX_PAD = """\
I: Bus=0003 Vendor=045e Product=028e Version=0110
N: Name="Microsoft X-Box 360 pad"
H: Handlers=event18 js0

I: Bus=0003 Vendor=046d Product=c52b Version=0111
N: Name="Logitech USB Receiver"
H: Handlers=sysrq kbd event3 leds
"""


@pytest.fixture
def root():
    # Short path: the pulse socket must fit in sun_path
    path = tempfile.mkdtemp(prefix="gd-")
    yield path
    shutil.rmtree(path, ignore_errors=True)


def make_config(root: str, **overrides) -> DeviceConfig:
    values = dict(
        dri_path=os.path.join(root, "dri"),
        nvidia_device_glob=os.path.join(root, "nvidia*"),
        drm_class_dir=os.path.join(root, "drm"),
        snd_path=os.path.join(root, "snd"),
        pulse_socket_candidates=[
            "${XDG_RUNTIME_DIR}/pulse",
            os.path.join(root, "pulse-socket"),
        ],
        pulse_cookie_path="~/.config/pulse/cookie",
        cookie_staging_dir=os.path.join(root, "staging"),
        input_dir=os.path.join(root, "input"),
        udev_dir=os.path.join(root, "udev"),
        input_registry=os.path.join(root, "devices"),
        uinput_path=os.path.join(root, "uinput"),
    )
    values.update(overrides)
    return DeviceConfig(**values)


def listen(path: str) -> socket.socket:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.bind(path)
    sock.listen(1)
    return sock


def resolver(root: str, environ=None, **overrides) -> DeviceAccessResolver:
    return DeviceAccessResolver(
        make_config(root, **overrides),
        environ=environ or {},
        home=os.path.join(root, "home"),
    )


class TestInput:
    def test_input_directory_bound_with_cgroup_rule(self, root):
        os.makedirs(os.path.join(root, "input"))

        binding = resolver(root).resolve("sess-1")

        assert binding.input_directory_bind is True
        assert f"{root}/input:/dev/input:rw" in binding.binds
        assert binding.cgroup_device_rules == [INPUT_CGROUP_RULE]
        assert INPUT_CGROUP_RULE == "c 13:* rmw"

    def test_no_input_dir_no_rule(self, root):
        binding = resolver(root).resolve("sess-1")

        assert binding.input_directory_bind is False
        assert binding.cgroup_device_rules == []

    def test_input_disabled(self, root):
        os.makedirs(os.path.join(root, "input"))

        binding = resolver(root, input=False).resolve("sess-1")

        assert binding.input_directory_bind is False
        assert binding.cgroup_device_rules == []

    def test_udev_bound_read_only(self, root):
        os.makedirs(os.path.join(root, "input"))
        os.makedirs(os.path.join(root, "udev"))

        binding = resolver(root).resolve("sess-1")

        assert f"{root}/udev:/run/udev:ro" in binding.binds

    def test_joysticks_exported(self, root):
        os.makedirs(os.path.join(root, "input"))
        with open(os.path.join(root, "devices"), "w") as f:
            f.write(XBOX_PAD)

        binding = resolver(root).resolve("sess-1")

        assert binding.joystick_event_devices == ["/dev/input/event18"]
        assert binding.env["SDL_JOYSTICK_DEVICE"] == "/dev/input/event18"

    def test_list_joysticks_missing_registry(self, root):
        assert resolver(root).list_joysticks() == []

    def test_uinput_passed_as_device(self, root):
        uinput = os.path.join(root, "uinput")
        open(uinput, "w").close()

        binding = resolver(root).resolve("sess-1")

        assert binding.input_device_paths == [uinput]
        assert uinput in binding.device_paths

    def test_no_uinput_without_input(self, root):
        open(os.path.join(root, "uinput"), "w").close()

        binding = resolver(root, input=False).resolve("sess-1")

        assert binding.input_device_paths == []


class TestGpu:
    def test_dri_and_shm(self, root):
        os.makedirs(os.path.join(root, "dri"))

        binding = resolver(root).resolve("sess-1")

        assert binding.gpu_device_paths == [os.path.join(root, "dri")]
        assert binding.shared_memory_bytes == 2 * 1024**3

    def test_amd_vendor_from_drm(self, root):
        os.makedirs(os.path.join(root, "dri"))
        vendor_dir = os.path.join(root, "drm", "card0", "device")
        os.makedirs(vendor_dir)
        with open(os.path.join(vendor_dir, "vendor"), "w") as f:
            f.write("0x1002\n")

        binding = resolver(root).resolve("sess-1")

        assert binding.gpu_vendor == "amd"
        assert binding.env["GPU_VENDOR"] == "amd"

    def test_nvidia_nodes_win(self, root):
        for name in ("nvidia0", "nvidiactl"):
            open(os.path.join(root, name), "w").close()

        binding = resolver(root).resolve("sess-1")

        assert binding.gpu_vendor == "nvidia"
        assert binding.gpu_device_paths == [
            os.path.join(root, "nvidia0"),
            os.path.join(root, "nvidiactl"),
        ]

    def test_gpu_disabled(self, root):
        os.makedirs(os.path.join(root, "dri"))

        binding = resolver(root, gpu=False).resolve("sess-1")

        assert binding.gpu_device_paths == []
        assert binding.shared_memory_bytes is None


class TestAudio:
    def test_pulse_directory_with_native_socket(self, root):
        runtime = os.path.join(root, "run")
        sock = listen(os.path.join(runtime, "pulse", "native"))
        try:
            binding = resolver(root, {"XDG_RUNTIME_DIR": runtime}).resolve("sess-1")
        finally:
            sock.close()

        assert binding.audio_socket_path == os.path.join(runtime, "pulse", "native")
        assert f"{runtime}/pulse:/run/user/1000/pulse:rw" in binding.binds
        assert binding.env["PULSE_SERVER"] == "unix:/run/user/1000/pulse/native"

    def test_bare_socket_candidate(self, root):
        path = os.path.join(root, "pulse-socket")
        sock = listen(path)
        try:
            binding = resolver(root).resolve("sess-1")
        finally:
            sock.close()

        assert binding.audio_socket_path == path
        assert f"{path}:/run/user/1000/pulse/native:rw" in binding.binds

    def test_cookie_staged_for_container_user(self, root):
        sock = listen(os.path.join(root, "pulse-socket"))
        cookie_dir = os.path.join(root, "home", ".config", "pulse")
        os.makedirs(cookie_dir)
        with open(os.path.join(cookie_dir, "cookie"), "wb") as f:
            f.write(b"secret")
        os.chmod(os.path.join(cookie_dir, "cookie"), 0o600)
        try:
            binding = resolver(root, pulse_sink="game_sink").resolve("sess-42")
        finally:
            sock.close()

        staged = os.path.join(os.path.realpath(root), "staging", "sess-42", "cookie")
        assert binding.audio_cookie_path == staged
        st = os.stat(staged)
        if os.geteuid() == 0:
            assert (st.st_uid, st.st_gid) == (1000, 1000)
            assert stat.S_IMODE(st.st_mode) == 0o600
        else:
            assert stat.S_IMODE(st.st_mode) == 0o666
        with open(staged, "rb") as f:
            assert f.read() == b"secret"
        assert f"{staged}:/home/gameuser/.config/pulse/cookie:rw" in binding.binds
        assert binding.env["PULSE_COOKIE"] == "/home/gameuser/.config/pulse/cookie"
        assert binding.env["PULSE_SINK"] == "game_sink"

    @pytest.mark.parametrize("session_id", ["../../escaped", "..", "a/b", "", "x" * 65])
    def test_session_id_cannot_leave_staging_dir(self, root, session_id):
        sock = listen(os.path.join(root, "pulse-socket"))
        cookie_dir = os.path.join(root, "home", ".config", "pulse")
        os.makedirs(cookie_dir)
        with open(os.path.join(cookie_dir, "cookie"), "wb") as f:
            f.write(b"secret")
        try:
            with pytest.raises(ValidationError):
                resolver(root).resolve(session_id)
        finally:
            sock.close()

        assert not os.path.exists(os.path.join(os.path.dirname(root), "escaped"))
        assert not os.path.exists(os.path.join(root, "staging"))

    def test_release_session_removes_staging_dir(self, root):
        r = resolver(root)
        os.makedirs(os.path.join(root, "staging", "sess-1"))
        os.makedirs(os.path.join(root, "staging", "sess-2"))
        open(os.path.join(root, "staging", "stray-file"), "w").close()

        assert r.staged_sessions() == ["sess-1", "sess-2"]
        assert r.release_session("sess-1") is True
        assert r.release_session("sess-1") is False
        assert r.staged_sessions() == ["sess-2"]

    def test_no_staging_dir_means_nothing_staged(self, root):
        assert resolver(root).staged_sessions() == []

    def test_no_pulse_no_env(self, root):
        binding = resolver(root).resolve("sess-1")

        assert binding.audio_socket_path is None
        assert "PULSE_SERVER" not in binding.env

    def test_snd_directory_passed_as_device(self, root):
        os.makedirs(os.path.join(root, "snd"))

        binding = resolver(root).resolve("sess-1")

        assert binding.audio_device_paths == [os.path.join(root, "snd")]
        assert binding.device_paths == [os.path.join(root, "snd")]


class TestErrors:
    def test_unreadable_registry_is_device_access_error(self, root):
        os.makedirs(os.path.join(root, "input"))
        # A directory where the registry file should be
        os.makedirs(os.path.join(root, "devices"))

        with pytest.raises(DeviceAccessError) as exc_info:
            resolver(root).resolve("sess-1")

        assert exc_info.value.details["path"] == os.path.join(root, "devices")
