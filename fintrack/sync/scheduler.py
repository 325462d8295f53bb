"""
Sync scheduler.

Runs a reconciliation pass over every known account, sleeps for the
configured interval, and repeats until the process shuts down.
"""

import asyncio
import uuid
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fintrack.core.clock import Clock, utc_now
from fintrack.db.unit_of_work import UnitOfWork
from fintrack.sync.config import SyncConfig
from fintrack.sync.metrics import SyncMetrics, SyncPassResult
from fintrack.sync.reconciler import Reconciler

logger = structlog.get_logger(__name__)


class SyncScheduler:
    """
    Background synchronization loop.

    Accounts are reconciled one at a time in account id order. An error
    for one account is logged and recorded in the pass result; the pass
    moves on to the next account and the loop never stops on its own.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reconciler: Reconciler,
        config: Optional[SyncConfig] = None,
        metrics: Optional[SyncMetrics] = None,
        clock: Clock = utc_now,
    ):
        self._session_factory = session_factory
        self.reconciler = reconciler
        self.config = config or SyncConfig()
        self.metrics = metrics or SyncMetrics()
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

        logger.info(
            "scheduler.initialized",
            interval_seconds=self.config.interval_seconds,
            window_days=self.config.window_days,
            batch_size=self.config.batch_size,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def spawn(self) -> asyncio.Task:
        """Schedule ``run_forever`` as a background task."""
        if self.running:
            logger.warning("scheduler.already_running")
            assert self._task is not None
            return self._task

        self._task = asyncio.create_task(self.run_forever(), name="sync-scheduler")
        logger.info("scheduler.started", interval_seconds=self.config.interval_seconds)
        return self._task

    async def run_forever(self) -> None:
        """Run passes forever, sleeping ``interval_seconds`` after each one."""
        while True:
            try:
                await self.run_pass()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "scheduler.pass_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )

            await asyncio.sleep(self.config.interval_seconds)

    async def run_pass(self) -> SyncPassResult:
        """
        Reconcile every known account once.

        Returns:
            Per-account results and errors of this pass

        Raises:
            StoreError: The account list could not be read
        """
        result = SyncPassResult(pass_id=uuid.uuid4().hex[:12], started_at=self._clock())
        logger.info("sync.pass_started", pass_id=result.pass_id)

        async with UnitOfWork(self._session_factory) as uow:
            account_ids = [a.id for a in await uow.accounts.get_all_ordered()]

        for account_id in account_ids:
            try:
                outcome = await self.reconciler.reconcile(account_id)
                result.results.append(outcome)
            except Exception as e:
                logger.error(
                    "sync.account_failed",
                    pass_id=result.pass_id,
                    account_id=account_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.errors[account_id] = str(e)

        result.ended_at = self._clock()
        self.metrics.record(result)

        logger.info(
            "sync.pass_completed",
            pass_id=result.pass_id,
            accounts=len(account_ids),
            failed=result.accounts_failed,
            inserted=result.inserted,
            deleted=result.deleted,
            duration_seconds=result.duration_seconds,
        )
        return result

    def get_status(self) -> Dict[str, Any]:
        """Current scheduler state and recent pass metrics."""
        last_pass = self.metrics.get_last_pass()
        return {
            "running": self.running,
            "enabled": self.config.enabled,
            "last_pass": last_pass.to_dict() if last_pass else None,
            "recent_passes": [p.to_dict() for p in self.metrics.get_history(limit=10)],
            "aggregate": self.metrics.get_aggregate(),
            "config": {
                "interval_seconds": self.config.interval_seconds,
                "window_days": self.config.window_days,
                "history_days": self.config.history_days,
                "batch_size": self.config.batch_size,
            },
        }
