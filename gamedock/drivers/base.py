"""Engine client base class - container engine abstraction.

The engine client only executes what it is handed. It does NOT decide
mounts, devices or commands; those arrive fully resolved in a LaunchSpec.
Create/start/stop semantics are the engine's own.

All containers created for a session MUST be labeled with:
- gamedock.managed
- gamedock.session_id
- gamedock.game_id
- gamedock.instance_id
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum

from gamedock.models.launch import LaunchSpec
from gamedock.resolvers.host_paths import MountPoint


class ContainerStatus(str, Enum):
    """Container status from the engine's perspective."""

    CREATED = "created"
    RUNNING = "running"
    EXITED = "exited"
    REMOVING = "removing"
    NOT_FOUND = "not_found"


@dataclass
class ContainerInspection:
    """Result of inspect()."""

    container_id: str
    status: ContainerStatus
    mounts: list[MountPoint] = field(default_factory=list)
    exit_code: int | None = None


@dataclass
class RuntimeInstance:
    """Managed container discovered by label, for the orphan sweep."""

    id: str
    name: str
    labels: dict[str, str]
    state: str
    created_at: str | None = None


class EngineClient(ABC):
    """Abstract container engine client."""

    @abstractmethod
    async def create(
        self,
        spec: LaunchSpec,
        *,
        name: str,
        labels: dict[str, str] | None = None,
    ) -> str:
        """Create a container without starting it.

        Returns:
            Container ID
        """
        ...

    @abstractmethod
    async def start(self, container_id: str) -> None:
        """Start a created container."""
        ...

    @abstractmethod
    async def stop(self, container_id: str) -> None:
        """Stop a running container. Missing containers are not an error."""
        ...

    @abstractmethod
    async def remove(self, container_id: str) -> None:
        """Force-remove a container. Missing containers are not an error."""
        ...

    @abstractmethod
    async def inspect(self, container_id: str) -> ContainerInspection:
        """Container state and live mount table."""
        ...

    @abstractmethod
    def logs(self, container_id: str, *, follow: bool = False, tail: int = 200) -> AsyncIterator[str]:
        """Stream log lines (stdout and stderr)."""
        ...

    @abstractmethod
    async def wait(self, container_id: str) -> int | None:
        """Block until the container exits; returns the exit code.

        Cancellable: cancelling the awaiting task abandons the wait.
        """
        ...

    @abstractmethod
    async def list_managed(self, labels: dict[str, str]) -> list[RuntimeInstance]:
        """List containers carrying all ``labels``."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None
