"""Container engine clients."""

from gamedock.drivers.base import (
    ContainerInspection,
    ContainerStatus,
    EngineClient,
    RuntimeInstance,
)

__all__ = [
    "ContainerInspection",
    "ContainerStatus",
    "EngineClient",
    "RuntimeInstance",
]
