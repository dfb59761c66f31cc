"""Docker engine client implementation using aiodocker.

The orchestrator usually runs in a container with the host's docker.sock
mounted, so game containers are siblings: named volumes are referenced by
name and host sockets/devices by their host paths, exactly as they appear
in the LaunchSpec.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import aiodocker
import structlog
from aiodocker.exceptions import DockerError

from gamedock.config import DockerConfig, get_settings
from gamedock.drivers.base import (
    ContainerInspection,
    ContainerStatus,
    EngineClient,
    RuntimeInstance,
)
from gamedock.errors import ContainerRuntimeError
from gamedock.models.launch import LaunchSpec
from gamedock.resolvers.host_paths import MountPoint

logger = structlog.get_logger()

_STATUS_MAP = {
    "running": ContainerStatus.RUNNING,
    "created": ContainerStatus.CREATED,
    "restarting": ContainerStatus.RUNNING,
    "paused": ContainerStatus.RUNNING,
    "exited": ContainerStatus.EXITED,
    "dead": ContainerStatus.EXITED,
    "removing": ContainerStatus.REMOVING,
}


def _runtime_error(operation: str, container_id: str | None, e: DockerError) -> ContainerRuntimeError:
    return ContainerRuntimeError(
        f"Container engine failed to {operation} container",
        details={"operation": operation, "container_id": container_id, "engine_status": e.status},
    )


class DockerEngineClient(EngineClient):
    """Engine client over the Docker API."""

    def __init__(self, config: DockerConfig | None = None) -> None:
        docker_cfg = config or get_settings().docker
        socket_url = docker_cfg.socket
        if socket_url.startswith(("unix://", "tcp://", "http://", "https://")):
            self._socket = socket_url
        else:
            self._socket = f"unix://{socket_url}"
        self._stop_timeout = docker_cfg.stop_timeout

        self._log = logger.bind(driver="docker")
        self._client: aiodocker.Docker | None = None

    async def _get_client(self) -> aiodocker.Docker:
        """Get or create the aiodocker client."""
        if self._client is None:
            self._client = aiodocker.Docker(url=self._socket)
        return self._client

    async def close(self) -> None:
        """Close the docker client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _build_container_config(
        self,
        spec: LaunchSpec,
        labels: dict[str, str],
    ) -> dict[str, Any]:
        """Translate a LaunchSpec into a Docker create body."""
        host_config: dict[str, Any] = {
            "Binds": list(spec.binds),
            "Devices": [
                {
                    "PathOnHost": path,
                    "PathInContainer": path,
                    "CgroupPermissions": "rwm",
                }
                for path in spec.devices
            ],
            "AutoRemove": False,
        }
        if spec.device_cgroup_rules:
            host_config["DeviceCgroupRules"] = list(spec.device_cgroup_rules)
        if spec.network_mode:
            host_config["NetworkMode"] = spec.network_mode
        if spec.ipc_mode:
            host_config["IpcMode"] = spec.ipc_mode
        if spec.security_opts:
            host_config["SecurityOpt"] = list(spec.security_opts)
        if spec.shm_size:
            host_config["ShmSize"] = spec.shm_size
        if spec.group_add:
            host_config["GroupAdd"] = list(spec.group_add)

        config: dict[str, Any] = {
            "Image": spec.image,
            "Env": [f"{k}={v}" for k, v in spec.env.items()],
            "Labels": dict(labels),
            "HostConfig": host_config,
            "Tty": True,
            "OpenStdin": True,
        }
        if spec.command:
            config["Cmd"] = list(spec.command)
        if spec.working_dir:
            config["WorkingDir"] = spec.working_dir
        return config

    async def create(
        self,
        spec: LaunchSpec,
        *,
        name: str,
        labels: dict[str, str] | None = None,
    ) -> str:
        """Create a container without starting it."""
        client = await self._get_client()
        config = self._build_container_config(spec, labels or {})

        self._log.info(
            "docker.create",
            name=name,
            image=spec.image,
            binds=len(spec.binds),
            devices=spec.devices,
            cgroup_rules=spec.device_cgroup_rules,
        )

        try:
            container = await client.containers.create(config=config, name=name)
        except DockerError as e:
            self._log.error("docker.create_failed", name=name, status=e.status, error=str(e))
            raise _runtime_error("create", None, e) from e

        self._log.info("docker.created", container_id=container.id, name=name)
        return container.id

    async def start(self, container_id: str) -> None:
        """Start a created container."""
        client = await self._get_client()
        self._log.info("docker.start", container_id=container_id)

        try:
            container = client.containers.container(container_id)
            await container.start()
        except DockerError as e:
            self._log.error("docker.start_failed", container_id=container_id, status=e.status, error=str(e))
            raise _runtime_error("start", container_id, e) from e

    async def stop(self, container_id: str) -> None:
        """Stop a running container."""
        client = await self._get_client()
        self._log.info("docker.stop", container_id=container_id)

        try:
            container = client.containers.container(container_id)
            await container.stop(timeout=self._stop_timeout)
        except DockerError as e:
            if e.status == 404:
                self._log.warning("docker.stop.not_found", container_id=container_id)
            else:
                raise _runtime_error("stop", container_id, e) from e

    async def remove(self, container_id: str) -> None:
        """Force-remove a container."""
        client = await self._get_client()
        self._log.info("docker.remove", container_id=container_id)

        try:
            container = client.containers.container(container_id)
            await container.delete(force=True)
        except DockerError as e:
            if e.status == 404:
                self._log.warning("docker.remove.not_found", container_id=container_id)
            else:
                raise _runtime_error("remove", container_id, e) from e

    @staticmethod
    def _parse_inspection(container_id: str, info: dict[str, Any]) -> ContainerInspection:
        state = info.get("State", {}) or {}
        status = _STATUS_MAP.get(state.get("Status", ""), ContainerStatus.EXITED)
        mounts = [
            MountPoint(
                source=m.get("Source", ""),
                destination=m.get("Destination", ""),
                type=m.get("Type", "bind"),
                name=m.get("Name"),
                rw=bool(m.get("RW", True)),
            )
            for m in info.get("Mounts", []) or []
        ]
        return ContainerInspection(
            container_id=container_id,
            status=status,
            mounts=mounts,
            exit_code=state.get("ExitCode"),
        )

    async def inspect(self, container_id: str) -> ContainerInspection:
        """Get container state and mounts."""
        client = await self._get_client()

        try:
            container = client.containers.container(container_id)
            info = await container.show()
        except DockerError as e:
            if e.status == 404:
                return ContainerInspection(
                    container_id=container_id,
                    status=ContainerStatus.NOT_FOUND,
                )
            raise _runtime_error("inspect", container_id, e) from e

        return self._parse_inspection(container_id, info)

    async def logs(
        self,
        container_id: str,
        *,
        follow: bool = False,
        tail: int = 200,
    ) -> AsyncIterator[str]:
        """Stream container logs."""
        client = await self._get_client()
        container = client.containers.container(container_id)

        try:
            if follow:
                async for line in container.log(stdout=True, stderr=True, follow=True, tail=tail):
                    yield line
            else:
                for line in await container.log(stdout=True, stderr=True, tail=tail):
                    yield line
        except DockerError as e:
            if e.status == 404:
                return
            raise _runtime_error("read logs of", container_id, e) from e

    async def wait(self, container_id: str) -> int | None:
        """Wait for the container to exit."""
        client = await self._get_client()

        try:
            container = client.containers.container(container_id)
            result = await container.wait()
        except DockerError as e:
            if e.status == 404:
                return None
            raise _runtime_error("wait for", container_id, e) from e

        return result.get("StatusCode")

    async def list_managed(self, labels: dict[str, str]) -> list[RuntimeInstance]:
        """List containers matching all labels."""
        client = await self._get_client()
        filters = {"label": [f"{k}={v}" for k, v in labels.items()]}

        self._log.debug("docker.list_managed", filters=filters)

        try:
            containers = await client.containers.list(all=True, filters=filters)
        except DockerError as e:
            raise _runtime_error("list", None, e) from e

        instances = []
        for container in containers:
            info = await container.show()
            instances.append(
                RuntimeInstance(
                    id=info.get("Id", ""),
                    name=info.get("Name", "").lstrip("/"),
                    labels=info.get("Config", {}).get("Labels", {}) or {},
                    state=info.get("State", {}).get("Status", "unknown"),
                    created_at=info.get("Created"),
                )
            )
        return instances
