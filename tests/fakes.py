"""Fake implementations for testing.

These fakes let unit tests run without a container engine or host devices.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from gamedock.drivers.base import (
    ContainerInspection,
    ContainerStatus,
    EngineClient,
    RuntimeInstance,
)
from gamedock.errors import ContainerRuntimeError
from gamedock.launch.builder import build_launch_spec
from gamedock.launch.planner import LaunchPlan
from gamedock.models.catalog import Game, Platform
from gamedock.models.launch import (
    DeviceBinding,
    DisplayBinding,
    DisplayProtocol,
    JoystickAssignment,
    LaunchSpec,
    SessionRequest,
    VolumeCategory,
    VolumeReport,
    VolumeStatus,
    conventional_mount_path,
)
from gamedock.resolvers.host_paths import MountPoint


@dataclass
class FakeContainerState:
    """State of a fake container."""

    container_id: str
    name: str
    labels: dict[str, str]
    spec: LaunchSpec | None = None
    status: ContainerStatus = ContainerStatus.CREATED
    mounts: list[MountPoint] = field(default_factory=list)
    exit_code: int | None = None


class FakeEngineClient(EngineClient):
    """Fake engine client for unit testing.

    Records every call for assertions. ``fail_on`` maps an operation name
    (create, start, stop, remove, inspect) to the exception it raises. Set
    ``start_gate`` to hold start() until the event is set.
    """

    def __init__(self) -> None:
        self.containers: dict[str, FakeContainerState] = {}
        self._next_container_id = 1

        self.create_calls: list[dict[str, Any]] = []
        self.start_calls: list[str] = []
        self.stop_calls: list[str] = []
        self.remove_calls: list[str] = []
        self.inspect_calls: list[str] = []
        self.wait_calls: list[str] = []

        self.fail_on: dict[str, Exception] = {}
        # Status the container reports after start (e.g. CREATED for a dud)
        self.status_after_start = ContainerStatus.RUNNING
        self.log_lines: list[str] = []
        self.closed = False
        self.start_gate: asyncio.Event | None = None
        self.start_entered = asyncio.Event()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def add_container(
        self,
        name: str,
        labels: dict[str, str],
        *,
        status: ContainerStatus = ContainerStatus.RUNNING,
        mounts: list[MountPoint] | None = None,
    ) -> str:
        """Register a container that was not created through create()."""
        container_id = f"fake-container-{self._next_container_id}"
        self._next_container_id += 1
        self.containers[container_id] = FakeContainerState(
            container_id=container_id,
            name=name,
            labels=dict(labels),
            status=status,
            mounts=list(mounts or []),
        )
        return container_id

    def exit_container(self, container_id: str, exit_code: int = 0) -> None:
        state = self.containers[container_id]
        state.status = ContainerStatus.EXITED
        state.exit_code = exit_code

    async def create(
        self,
        spec: LaunchSpec,
        *,
        name: str,
        labels: dict[str, str] | None = None,
    ) -> str:
        self.create_calls.append({"spec": spec, "name": name, "labels": labels})
        self._maybe_fail("create")

        container_id = self.add_container(name, labels or {}, status=ContainerStatus.CREATED)
        self.containers[container_id].spec = spec
        return container_id

    async def start(self, container_id: str) -> None:
        self.start_calls.append(container_id)
        if self.start_gate is not None:
            self.start_entered.set()
            await self.start_gate.wait()
        self._maybe_fail("start")
        state = self.containers.get(container_id)
        if state is None:
            raise ContainerRuntimeError(f"No such container: {container_id}")
        state.status = self.status_after_start

    async def stop(self, container_id: str) -> None:
        self.stop_calls.append(container_id)
        self._maybe_fail("stop")
        if container_id in self.containers:
            self.containers[container_id].status = ContainerStatus.EXITED

    async def remove(self, container_id: str) -> None:
        self.remove_calls.append(container_id)
        self._maybe_fail("remove")
        self.containers.pop(container_id, None)

    async def inspect(self, container_id: str) -> ContainerInspection:
        self.inspect_calls.append(container_id)
        self._maybe_fail("inspect")
        state = self.containers.get(container_id)
        if state is None:
            return ContainerInspection(container_id=container_id, status=ContainerStatus.NOT_FOUND)
        return ContainerInspection(
            container_id=container_id,
            status=state.status,
            mounts=list(state.mounts),
            exit_code=state.exit_code,
        )

    async def logs(
        self,
        container_id: str,
        *,
        follow: bool = False,
        tail: int = 200,
    ) -> AsyncIterator[str]:
        for line in self.log_lines[-tail:]:
            yield line

    async def wait(self, container_id: str) -> int | None:
        self.wait_calls.append(container_id)
        state = self.containers.get(container_id)
        if state is None:
            return None
        if state.status != ContainerStatus.EXITED:
            self.exit_container(container_id)
        return state.exit_code

    async def list_managed(self, labels: dict[str, str]) -> list[RuntimeInstance]:
        return [
            RuntimeInstance(
                id=state.container_id,
                name=state.name,
                labels=dict(state.labels),
                state=state.status.value,
            )
            for state in self.containers.values()
            if all(state.labels.get(k) == v for k, v in labels.items())
        ]

    async def close(self) -> None:
        self.closed = True


def detected_volumes(*, prefix: str = "gamedock", installed: list[str] | None = None) -> VolumeReport:
    """VolumeReport with core, roms, cache and ``installed`` suffixes detected."""

    def status(category: VolumeCategory, suffix: str | None = None) -> VolumeStatus:
        name = f"{prefix}_{category.value}" + (f"_{suffix}" if suffix else "")
        return VolumeStatus(
            category=category,
            backing_name=name,
            mount_path=conventional_mount_path(category, suffix),
            detected=True,
            suffix=suffix,
        )

    return VolumeReport(
        core=status(VolumeCategory.CORE),
        roms=status(VolumeCategory.ROMS),
        cache=status(VolumeCategory.CACHE),
        installed=[status(VolumeCategory.INSTALLED, s) for s in installed or []],
    )


def wayland_display(socket_path: str = "/run/user/1000/wayland-0") -> DisplayBinding:
    return DisplayBinding(
        protocol=DisplayProtocol.WAYLAND,
        host_socket_path=socket_path,
        container_socket_path="/run/user/1000/wayland-0",
        env={"WAYLAND_DISPLAY": "wayland-0", "XDG_RUNTIME_DIR": "/run/user/1000"},
        binds=[f"{socket_path}:/run/user/1000/wayland-0:rw"],
    )


class FakeLaunchPlanner:
    """Planner returning builds against fixed resolver outputs.

    Set ``error`` to make plan() raise it instead, or ``gate`` to hold
    plan() until the event is set.
    """

    def __init__(
        self,
        volumes: VolumeReport | None = None,
        display: DisplayBinding | None = None,
        devices: DeviceBinding | None = None,
    ) -> None:
        self.volumes = volumes or detected_volumes()
        self.display = display or wayland_display()
        self.devices = devices or DeviceBinding()
        self.joysticks: dict[str, JoystickAssignment] = {}
        self.error: Exception | None = None
        self.requests: list[SessionRequest] = []
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    async def plan(self, game: Game, platform: Platform, request: SessionRequest) -> LaunchPlan:
        self.requests.append(request)
        if self.gate is not None:
            self.entered.set()
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        result = build_launch_spec(
            game,
            platform,
            request,
            self.volumes,
            self.display,
            self.devices,
            joysticks=self.joysticks,
        )
        return LaunchPlan(result=result, display=self.display)
