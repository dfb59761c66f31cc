"""GC coordination.

Only one orchestrator instance manages a host's containers, so the default
coordinator always grants the cycle.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class GCCoordinator(ABC):
    """Decides whether this instance runs a GC cycle."""

    @abstractmethod
    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[bool]:
        """Yield True if this instance may run the cycle."""
        ...


class NoopCoordinator(GCCoordinator):
    """Always grants the cycle."""

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[bool]:
        yield True
