"""GC task base classes and result structures."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class GCResult:
    """Result of one GC task run.

    Attributes:
        task_name: Name of the GC task
        cleaned_count: Resources cleaned
        skipped_count: Resources inspected and left alone
        errors: Per-resource failures
    """

    task_name: str = ""
    cleaned_count: int = 0
    skipped_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, error: str) -> None:
        self.errors.append(error)


class GCTask(ABC):
    """One sweep over one kind of leftover.

    - StuckSessionGC: sessions that never left starting
    - ExitedSessionGC: running sessions whose container is gone
    - OrphanContainerGC: labelled containers with no session record
    - CookieStagingGC: audio cookie copies of ended sessions
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def run(self) -> GCResult:
        """Run the sweep.

        A failure on one resource is collected in GCResult.errors and does
        not abort the sweep.
        """
        ...
