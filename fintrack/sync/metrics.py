"""
Sync pass metrics.

Keeps a bounded in-memory history of sync passes so the status endpoint
can report what the background scheduler has been doing.
"""

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional


@dataclass
class ReconcileResult:
    """Outcome of reconciling one account."""

    account_id: str
    mode: str  # "initial" or "incremental"
    fetched: int = 0
    stored_in_window: int = 0
    inserted: int = 0
    deleted: int = 0
    changed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncPassResult:
    """Outcome of one pass over every known account."""

    pass_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    results: List[ReconcileResult] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def accounts_synced(self) -> int:
        return len(self.results)

    @property
    def accounts_failed(self) -> int:
        return len(self.errors)

    @property
    def inserted(self) -> int:
        return sum(r.inserted for r in self.results)

    @property
    def deleted(self) -> int:
        return sum(r.deleted for r in self.results)

    @property
    def duration_seconds(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pass_id": self.pass_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": self.duration_seconds,
            "accounts_synced": self.accounts_synced,
            "accounts_failed": self.accounts_failed,
            "inserted": self.inserted,
            "deleted": self.deleted,
            "errors": dict(self.errors),
        }


class SyncMetrics:
    """Bounded history of sync passes with simple aggregates."""

    def __init__(self, max_history: int = 100):
        self._history: Deque[SyncPassResult] = deque(maxlen=max_history)

    def record(self, result: SyncPassResult) -> None:
        self._history.append(result)

    def get_last_pass(self) -> Optional[SyncPassResult]:
        return self._history[-1] if self._history else None

    def get_history(self, limit: int = 10) -> List[SyncPassResult]:
        """Most recent passes, newest first."""
        return list(reversed(self._history))[:limit]

    def get_aggregate(self) -> Dict[str, Any]:
        passes = list(self._history)
        return {
            "total_passes": len(passes),
            "clean_passes": sum(1 for p in passes if not p.errors),
            "account_failures": sum(p.accounts_failed for p in passes),
            "total_inserted": sum(p.inserted for p in passes),
            "total_deleted": sum(p.deleted for p in passes),
        }
