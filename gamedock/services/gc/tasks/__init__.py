"""GC tasks."""

from gamedock.services.gc.tasks.cookie_staging import CookieStagingGC
from gamedock.services.gc.tasks.exited_session import ExitedSessionGC
from gamedock.services.gc.tasks.orphan_container import OrphanContainerGC
from gamedock.services.gc.tasks.stuck_session import StuckSessionGC

__all__ = ["CookieStagingGC", "ExitedSessionGC", "OrphanContainerGC", "StuckSessionGC"]
