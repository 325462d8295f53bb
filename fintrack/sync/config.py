"""
Synchronization configuration.

Defines the scheduler cadence, the reconciliation windows and the
batch size of transaction inserts.
"""

from datetime import timedelta

from pydantic import BaseModel, Field

from fintrack.core.config import Settings


class SyncConfig(BaseModel):
    """Reconciliation and scheduler settings."""

    interval_seconds: int = Field(
        default=300, ge=1, description="Seconds between the end of a pass and the next"
    )
    window_days: int = Field(
        default=30, ge=1, description="Trailing window compared on incremental syncs"
    )
    history_days: int = Field(
        default=365 * 6, ge=1, description="History fetched on an account's first sync"
    )
    batch_size: int = Field(
        default=100, ge=1, le=1000, description="Rows per INSERT statement"
    )
    enabled: bool = Field(default=True, description="Run the background scheduler")

    def get_window(self) -> timedelta:
        """Get the incremental sync window as timedelta."""
        return timedelta(days=self.window_days)

    def get_history(self) -> timedelta:
        """Get the first sync history span as timedelta."""
        return timedelta(days=self.history_days)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncConfig":
        return cls(
            interval_seconds=settings.SYNC_INTERVAL_SECONDS,
            window_days=settings.SYNC_WINDOW_DAYS,
            history_days=settings.SYNC_HISTORY_DAYS,
            batch_size=settings.SYNC_BATCH_SIZE,
            enabled=settings.SYNC_ENABLED,
        )
