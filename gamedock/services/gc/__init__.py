"""Background sweeps for stuck sessions and orphan containers.

Usage:
    from gamedock.services.gc import GCScheduler

    scheduler = GCScheduler(config=settings.gc, tasks=[...])
    await scheduler.start()
"""

from gamedock.services.gc.base import GCResult, GCTask
from gamedock.services.gc.coordinator import GCCoordinator, NoopCoordinator
from gamedock.services.gc.scheduler import GCScheduler

__all__ = [
    "GCTask",
    "GCResult",
    "GCCoordinator",
    "NoopCoordinator",
    "GCScheduler",
]
