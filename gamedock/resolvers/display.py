"""DisplayConfigurator - host display protocol detection.

Selection order is fixed:

1. Wayland, when XDG_RUNTIME_DIR/WAYLAND_DISPLAY name a live socket. A stale
   socket triggers a rescan of every per-user runtime directory.
2. X11, when DISPLAY is set and the X11 socket directory exists.
3. none; whether a headless path applies is the caller's decision.

Wayland is chosen whenever both are viable.
"""

from __future__ import annotations

import glob
import os
import re
from collections.abc import Mapping

import structlog

from gamedock.config import DisplayConfig
from gamedock.errors import DisplayUnavailableError
from gamedock.host.sockets import poll_with_backoff, socket_is_live
from gamedock.models.launch import DisplayBinding, DisplayProtocol

logger = structlog.get_logger()

# Required for MIT-SHM in X11 clients
X11_SECURITY_OPTS = ("seccomp=unconfined",)
X11_IPC_MODE = "host"

CONTAINER_X11_DIR = "/tmp/.X11-unix"

_DISPLAY_RE = re.compile(r"^[^:]*:(\d+)(?:\.\d+)?$")


class DisplayConfigurator:
    """Produces the DisplayBinding for the current host state."""

    def __init__(
        self,
        config: DisplayConfig,
        *,
        environ: Mapping[str, str] | None = None,
        home: str | None = None,
    ) -> None:
        self._config = config
        self._environ = environ if environ is not None else os.environ
        self._home = home or os.path.expanduser("~")
        self._log = logger.bind(resolver="display")

    def resolve(self) -> DisplayBinding:
        """Detect the display protocol and build its binding."""
        wayland = self._wayland_binding()
        x11 = self._x11_binding()

        if wayland is not None:
            binding = wayland
        elif x11 is not None:
            binding = x11
        else:
            binding = DisplayBinding(protocol=DisplayProtocol.NONE)

        self._log.debug(
            "display.resolved",
            protocol=binding.protocol.value,
            socket=binding.host_socket_path,
        )
        return binding

    async def wait_for_display(self, timeout: float | None = None) -> DisplayBinding:
        """Poll until a display protocol is available.

        Raises:
            DisplayUnavailableError: If neither Wayland nor X11 appears in time.
        """
        found: list[DisplayBinding] = []

        def probe() -> bool:
            binding = self.resolve()
            if binding.protocol == DisplayProtocol.NONE:
                return False
            found.append(binding)
            return True

        wait = timeout if timeout is not None else self._config.wait_timeout
        ok = await poll_with_backoff(
            probe,
            timeout=wait,
            initial_interval=self._config.wait_initial_interval,
            max_interval=self._config.wait_max_interval,
            backoff_factor=self._config.wait_backoff_factor,
        )
        if not ok:
            self._log.warning("display.unavailable", timeout=wait)
            raise DisplayUnavailableError(
                f"No Wayland or X11 display became available within {wait:g}s"
            )
        return found[-1]

    # -- Wayland -----------------------------------------------------------

    def _find_wayland_socket(self) -> str | None:
        runtime_dir = self._environ.get("XDG_RUNTIME_DIR")
        display = self._environ.get("WAYLAND_DISPLAY")
        if not runtime_dir and not display:
            return None

        expected: str | None = None
        if display and os.path.isabs(display):
            expected = display
        elif runtime_dir:
            expected = os.path.join(runtime_dir, display or "wayland-0")

        if expected is not None and socket_is_live(expected):
            return expected

        self._log.info("display.wayland_stale", expected=expected)
        return self._rescan_wayland()

    def _rescan_wayland(self) -> str | None:
        """First live wayland-* socket across per-user runtime dirs (sorted)."""
        pattern = os.path.join(self._config.runtime_root, "*", "wayland-*")
        for candidate in sorted(glob.glob(pattern)):
            if candidate.endswith(".lock"):
                continue
            if socket_is_live(candidate):
                self._log.info("display.wayland_rescan_found", socket=candidate)
                return candidate
        return None

    def _wayland_binding(self) -> DisplayBinding | None:
        host_socket = self._find_wayland_socket()
        if host_socket is None:
            return None

        name = os.path.basename(host_socket)
        container_dir = self._config.container_runtime_dir
        container_socket = f"{container_dir}/{name}"
        return DisplayBinding(
            protocol=DisplayProtocol.WAYLAND,
            host_socket_path=host_socket,
            container_socket_path=container_socket,
            env={
                "WAYLAND_DISPLAY": name,
                "XDG_RUNTIME_DIR": container_dir,
                "QT_QPA_PLATFORM": "wayland",
                "GDK_BACKEND": "wayland",
                "SDL_VIDEODRIVER": "wayland",
            },
            binds=[f"{host_socket}:{container_socket}:rw"],
            security_opts=[],
        )

    # -- X11 ---------------------------------------------------------------

    def _xauthority_path(self) -> str | None:
        candidate = self._environ.get("XAUTHORITY") or os.path.join(self._home, ".Xauthority")
        try:
            if os.path.isfile(candidate) and os.path.getsize(candidate) > 0:
                return candidate
        except OSError:
            return None
        return None

    def _x11_binding(self) -> DisplayBinding | None:
        display = self._environ.get("DISPLAY")
        x11_dir = self._config.x11_socket_dir
        if not display or not os.path.isdir(x11_dir):
            return None

        match = _DISPLAY_RE.match(display)
        number = match.group(1) if match else "0"

        env = {"DISPLAY": display}
        binds = [f"{x11_dir}:{CONTAINER_X11_DIR}:rw"]

        xauth = self._xauthority_path()
        if xauth is not None:
            container_xauth = f"{self._config.container_home}/.Xauthority"
            binds.append(f"{xauth}:{container_xauth}:ro")
            env["XAUTHORITY"] = container_xauth

        return DisplayBinding(
            protocol=DisplayProtocol.X11,
            host_socket_path=os.path.join(x11_dir, f"X{number}"),
            container_socket_path=f"{CONTAINER_X11_DIR}/X{number}",
            env=env,
            binds=binds,
            ipc_mode=X11_IPC_MODE,
            security_opts=list(X11_SECURITY_OPTS),
        )
