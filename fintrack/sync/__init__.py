"""Transaction synchronization: reconciliation engine and background scheduler."""

from fintrack.sync.config import SyncConfig
from fintrack.sync.metrics import ReconcileResult, SyncMetrics, SyncPassResult
from fintrack.sync.reconciler import Reconciler, has_changed
from fintrack.sync.scheduler import SyncScheduler

__all__ = [
    "SyncConfig",
    "ReconcileResult",
    "SyncMetrics",
    "SyncPassResult",
    "Reconciler",
    "has_changed",
    "SyncScheduler",
]
