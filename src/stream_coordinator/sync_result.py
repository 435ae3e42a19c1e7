"""
Outcome types for the reconciliation passes.

A per-indexer failure is returned as a FAILED JobSyncResult and the pass
continues. Only failures the pass cannot isolate (listing workers,
stopping unregistered workers) are raised.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .models import JobConfig


class SyncAction(Enum):
    """What a pass did for one indexer"""

    UNCHANGED = "unchanged"  # Running worker already at the registry version
    STARTED = "started"  # Worker (re)started at the registry version
    FAILED = "failed"  # Error isolated to this indexer


@dataclass
class JobSyncResult:
    job: JobConfig
    action: SyncAction
    stopped: bool = False  # An outdated worker was stopped first
    start_block_height: Optional[int] = None
    error: Optional[Exception] = None

    @classmethod
    def unchanged(cls, job: JobConfig) -> "JobSyncResult":
        return cls(job=job, action=SyncAction.UNCHANGED)


@dataclass
class SyncReport:
    """Everything one pass did"""

    results: List[JobSyncResult] = field(default_factory=list)
    stopped_orphans: List[str] = field(default_factory=list)

    def _with_action(self, action: SyncAction) -> List[JobSyncResult]:
        return [result for result in self.results if result.action == action]

    @property
    def started(self) -> List[JobSyncResult]:
        return self._with_action(SyncAction.STARTED)

    @property
    def unchanged(self) -> List[JobSyncResult]:
        return self._with_action(SyncAction.UNCHANGED)

    @property
    def failed(self) -> List[JobSyncResult]:
        return self._with_action(SyncAction.FAILED)

    @property
    def has_changes(self) -> bool:
        return bool(self.started or self.failed or self.stopped_orphans)

    def summary(self) -> str:
        return (
            f"started={len(self.started)}, unchanged={len(self.unchanged)}, "
            f"failed={len(self.failed)}, stopped_unregistered={len(self.stopped_orphans)}"
        )
