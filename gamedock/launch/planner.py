"""LaunchPlanner - resolves live host state and builds the LaunchSpec.

The three resolvers are independent reads of host state and run
concurrently; the builder runs once all three complete. Nothing is cached
between launches.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from gamedock.errors import DisplayUnavailableError
from gamedock.launch.builder import BuildOptions, build_launch_spec
from gamedock.models.catalog import Game, Platform
from gamedock.models.launch import (
    BuildResult,
    DisplayBinding,
    DisplayProtocol,
    JoystickAssignment,
    SessionRequest,
)
from gamedock.resolvers.devices import DeviceAccessResolver
from gamedock.resolvers.display import DisplayConfigurator
from gamedock.resolvers.joysticks import JoystickAssignments
from gamedock.resolvers.volumes import VolumeResolver

logger = structlog.get_logger()


@dataclass
class LaunchPlan:
    """Build result plus the display it was built against."""

    result: BuildResult
    display: DisplayBinding


class LaunchPlanner:
    """Runs the resolvers and the builder for one launch."""

    def __init__(
        self,
        volumes: VolumeResolver,
        display: DisplayConfigurator,
        devices: DeviceAccessResolver,
        *,
        options: BuildOptions | None = None,
        wait_for_display: bool = True,
        display_timeout: float | None = None,
        joysticks: JoystickAssignments | None = None,
    ) -> None:
        self._volumes = volumes
        self._display = display
        self._devices = devices
        self._options = options or BuildOptions()
        self._wait_for_display = wait_for_display
        self._display_timeout = display_timeout
        self._joysticks = joysticks
        self._log = logger.bind(component="launch_planner")

    async def plan(self, game: Game, platform: Platform, request: SessionRequest) -> LaunchPlan:
        """Resolve host state and build the LaunchSpec.

        Raises:
            MissingVolumeError: A required volume is not detected.
            DisplayUnavailableError: No display and no streaming artifact.
            DeviceAccessError: Device state could not be read.
        """
        volumes, display, devices, joysticks = await asyncio.gather(
            asyncio.to_thread(self._volumes.resolve),
            asyncio.to_thread(self._display.resolve),
            asyncio.to_thread(self._devices.resolve, request.session_id),
            asyncio.to_thread(self._joystick_assignments),
        )

        def build(binding: DisplayBinding) -> BuildResult:
            return build_launch_spec(
                game,
                platform,
                request,
                volumes,
                binding,
                devices,
                options=self._options,
                joysticks=joysticks,
            )

        if display.protocol == DisplayProtocol.NONE and request.streaming is None:
            # Surface volume errors before spending time waiting on a socket
            build(display)
            if not self._wait_for_display:
                raise DisplayUnavailableError()
            self._log.info("launch.waiting_for_display", session_id=request.session_id)
            display = await self._display.wait_for_display(self._display_timeout)

        result = build(display)
        for warning in result.warnings:
            self._log.warning("launch.warning", session_id=request.session_id, warning=warning)
        return LaunchPlan(result=result, display=display)

    def _joystick_assignments(self) -> dict[str, JoystickAssignment]:
        if self._joysticks is None:
            return {}
        return self._joysticks.load()
