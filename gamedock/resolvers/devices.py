"""DeviceAccessResolver - GPU, audio and input passthrough.

Input devices are exposed by binding the whole input directory as a
regular mount. Per-device mappings silently drop directory trees, and the
engine's default device cgroup blocks the input major (13) even when file
permissions allow access, so an explicit ``c 13:* rmw`` rule is emitted
whenever input is bound.
"""

from __future__ import annotations

import glob
import os
import re
import shutil
import stat
from collections.abc import Mapping

import structlog

from gamedock.config import DeviceConfig
from gamedock.errors import DeviceAccessError, ValidationError
from gamedock.host.sockets import is_socket
from gamedock.models.launch import SESSION_ID_PATTERN, DeviceBinding, JoystickDevice
from gamedock.resolvers.joysticks import format_joystick_devices, parse_joystick_devices
from gamedock.utils.sizes import parse_size

logger = structlog.get_logger()

INPUT_CGROUP_RULE = "c 13:* rmw"
CONTAINER_INPUT_DIR = "/dev/input"
CONTAINER_UDEV_DIR = "/run/udev"

_SESSION_ID_RE = re.compile(SESSION_ID_PATTERN)

PCI_VENDORS = {
    "0x10de": "nvidia",
    "0x1002": "amd",
    "0x8086": "intel",
}


class DeviceAccessResolver:
    """Computes the DeviceBinding for a session."""

    def __init__(
        self,
        config: DeviceConfig,
        *,
        environ: Mapping[str, str] | None = None,
        home: str | None = None,
        owner: tuple[int, int] = (1000, 1000),
    ) -> None:
        self._config = config
        # uid/gid of the in-container user
        self._owner = owner
        self._environ = environ if environ is not None else os.environ
        self._home = home or os.path.expanduser("~")
        self._log = logger.bind(resolver="devices")

    def resolve(self, session_id: str) -> DeviceBinding:
        """Build the binding.

        The only write is the audio cookie copy into the per-session staging
        directory, removed again by release_session() once the session ends.

        Raises:
            DeviceAccessError: If host device state cannot be read.
            ValidationError: ``session_id`` cannot name a staging directory.
        """
        binding = DeviceBinding()
        try:
            if self._config.gpu:
                self._resolve_gpu(binding)
            if self._config.audio:
                self._resolve_audio(binding, session_id)
            if self._config.input:
                self._resolve_input(binding)
        except OSError as e:
            self._log.error("devices.resolve_failed", error=str(e), path=getattr(e, "filename", None))
            raise DeviceAccessError(
                f"Could not compute device access: {e.strerror or e}",
                details={"path": getattr(e, "filename", None)},
            ) from e

        binding.group_add = sorted(set(binding.group_add), key=int)
        self._log.debug(
            "devices.resolved",
            gpu=binding.gpu_device_paths,
            vendor=binding.gpu_vendor,
            audio=binding.audio_socket_path,
            joysticks=len(binding.joystick_event_devices),
        )
        return binding

    # -- GPU ---------------------------------------------------------------

    def _resolve_gpu(self, binding: DeviceBinding) -> None:
        if os.path.isdir(self._config.dri_path):
            binding.gpu_device_paths.append(self._config.dri_path)
        nvidia_nodes = sorted(
            p for p in glob.glob(self._config.nvidia_device_glob) if not os.path.isdir(p)
        )
        binding.gpu_device_paths.extend(nvidia_nodes)

        binding.shared_memory_bytes = parse_size(self._config.shm_size)
        binding.gpu_vendor = "nvidia" if nvidia_nodes else self._detect_pci_vendor()
        if binding.gpu_vendor:
            binding.env["GPU_VENDOR"] = binding.gpu_vendor

    def _detect_pci_vendor(self) -> str | None:
        pattern = os.path.join(self._config.drm_class_dir, "card*", "device", "vendor")
        for vendor_file in sorted(glob.glob(pattern)):
            try:
                with open(vendor_file) as f:
                    vendor_id = f.read().strip().lower()
            except OSError as e:
                self._log.debug("devices.vendor_unreadable", path=vendor_file, error=str(e))
                continue
            if vendor_id in PCI_VENDORS:
                return PCI_VENDORS[vendor_id]
        return None

    # -- Audio -------------------------------------------------------------

    def _pulse_candidates(self) -> list[str]:
        candidates = []
        for template in self._config.pulse_socket_candidates:
            if "${XDG_RUNTIME_DIR}" in template:
                runtime_dir = self._environ.get("XDG_RUNTIME_DIR")
                if not runtime_dir:
                    continue
                template = template.replace("${XDG_RUNTIME_DIR}", runtime_dir)
            candidates.append(template)
        return candidates

    def _resolve_audio(self, binding: DeviceBinding, session_id: str) -> None:
        container_dir = self._config.container_pulse_dir

        for candidate in self._pulse_candidates():
            if os.path.isdir(candidate) and is_socket(os.path.join(candidate, "native")):
                binding.audio_socket_path = os.path.join(candidate, "native")
                binding.binds.append(f"{candidate}:{container_dir}:rw")
                break
            if is_socket(candidate):
                binding.audio_socket_path = candidate
                binding.binds.append(f"{candidate}:{container_dir}/native:rw")
                break

        if binding.audio_socket_path is not None:
            binding.env["PULSE_SERVER"] = f"unix:{container_dir}/native"
            self._stage_cookie(binding, session_id)
            if self._config.pulse_sink:
                binding.env["PULSE_SINK"] = self._config.pulse_sink

        snd = self._config.snd_path
        if os.path.isdir(snd):
            binding.audio_device_paths.append(snd)
            binding.group_add.extend(_device_group_ids(snd))

    def _stage_cookie(self, binding: DeviceBinding, session_id: str) -> None:
        """Copy the pulse cookie where the container user can rewrite it."""
        source = self._config.pulse_cookie_path
        if source.startswith("~/"):
            source = os.path.join(self._home, source[2:])
        if not os.path.isfile(source):
            return

        staging_dir = self.staging_dir(session_id)
        os.makedirs(staging_dir, exist_ok=True)
        staged = os.path.join(staging_dir, "cookie")
        shutil.copyfile(source, staged)
        self._hand_over(staging_dir, staged)

        container_cookie = f"{self._config.container_home}/.config/pulse/cookie"
        binding.audio_cookie_path = staged
        binding.binds.append(f"{staged}:{container_cookie}:rw")
        binding.env["PULSE_COOKIE"] = container_cookie

    def _hand_over(self, staging_dir: str, staged: str) -> None:
        """Make the staged copy owned by (or at least writable for) the container user."""
        if os.geteuid() == 0:
            uid, gid = self._owner
            os.chown(staging_dir, uid, gid)
            os.chown(staged, uid, gid)
            os.chmod(staging_dir, 0o700)
            os.chmod(staged, 0o600)
        else:
            os.chmod(staging_dir, 0o777)
            os.chmod(staged, 0o666)

    def staging_dir(self, session_id: str) -> str:
        """Per-session cookie directory, always directly under the staging root.

        Raises:
            ValidationError: ``session_id`` would name a path elsewhere.
        """
        root = os.path.realpath(self._config.cookie_staging_dir)
        path = os.path.realpath(os.path.join(root, session_id))
        if not _SESSION_ID_RE.match(session_id) or os.path.dirname(path) != root:
            raise ValidationError(
                f"Invalid session id for cookie staging: {session_id!r}",
                details={"session_id": session_id},
            )
        return path

    def staged_sessions(self) -> list[str]:
        """Session ids that have a cookie staging directory."""
        try:
            entries = list(os.scandir(self._config.cookie_staging_dir))
        except FileNotFoundError:
            return []
        return sorted(
            e.name
            for e in entries
            if e.is_dir(follow_symlinks=False) and _SESSION_ID_RE.match(e.name)
        )

    def release_session(self, session_id: str) -> bool:
        """Remove the staging directory of an ended session."""
        path = self.staging_dir(session_id)
        if not os.path.isdir(path):
            return False
        shutil.rmtree(path)
        self._log.info("devices.staging_released", session_id=session_id)
        return True

    # -- Input -------------------------------------------------------------

    def _resolve_input(self, binding: DeviceBinding) -> None:
        # Emulators create virtual pads through uinput
        if os.path.exists(self._config.uinput_path):
            binding.input_device_paths.append(self._config.uinput_path)

        input_dir = self._config.input_dir
        if not os.path.isdir(input_dir):
            return

        binding.input_directory_bind = True
        binding.binds.append(f"{input_dir}:{CONTAINER_INPUT_DIR}:rw")
        binding.cgroup_device_rules.append(INPUT_CGROUP_RULE)
        binding.group_add.extend(_device_group_ids(input_dir))

        if os.path.isdir(self._config.udev_dir):
            binding.binds.append(f"{self._config.udev_dir}:{CONTAINER_UDEV_DIR}:ro")

        joysticks = self.list_joysticks()
        binding.joystick_event_devices = [j.event_device for j in joysticks]
        if joysticks:
            binding.env["SDL_JOYSTICK_DEVICE"] = format_joystick_devices(joysticks)

    def list_joysticks(self) -> list[JoystickDevice]:
        """Joysticks in the input-device registry, in registry order."""
        try:
            with open(self._config.input_registry, encoding="utf-8", errors="replace") as f:
                lines = f.readlines()
        except FileNotFoundError:
            self._log.info("devices.input_registry_missing", path=self._config.input_registry)
            return []
        return parse_joystick_devices(lines)


def _device_group_ids(directory: str) -> list[str]:
    """Group ids owning the character devices in ``directory``."""
    gids: set[int] = set()
    for entry in os.scandir(directory):
        st = entry.stat(follow_symlinks=False)
        if stat.S_ISCHR(st.st_mode) and st.st_gid != 0:
            gids.add(st.st_gid)
    return [str(g) for g in sorted(gids)]
