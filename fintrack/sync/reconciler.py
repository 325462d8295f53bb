"""
Transaction reconciliation.

Brings the stored transactions of one account in line with what the
aggregator reports. The first sync of an account imports its whole
history; every later sync compares a trailing window and, when the
window differs, replaces it wholesale (delete + reinsert, never update).

Change detection only looks at ids and counts. A transaction whose
category or description is corrected upstream while keeping its id is
not picked up until the window's membership or size changes.
"""

from datetime import datetime, timezone
from typing import Any, Collection, Dict, List, Optional, Protocol, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fintrack.core.clock import Clock, utc_now
from fintrack.db.unit_of_work import UnitOfWork
from fintrack.sync.config import SyncConfig
from fintrack.sync.metrics import ReconcileResult
from fintrack.truelayer.models import Transaction as RemoteTransaction

logger = structlog.get_logger(__name__)


class TransactionSource(Protocol):
    async def transactions(
        self, account_id: str, start: datetime, end: datetime
    ) -> List[RemoteTransaction]: ...


def has_changed(
    fresh: Sequence[RemoteTransaction], stored_ids: Collection[str]
) -> bool:
    """
    Decide whether a window must be rewritten.

    True when the counts differ or when a fresh id is not stored yet.
    Field values are deliberately not compared.
    """
    if len(fresh) != len(stored_ids):
        return True

    known = set(stored_ids)
    return any(t.transaction_id not in known for t in fresh)


def to_row(transaction: RemoteTransaction, account_id: str) -> Dict[str, Any]:
    """Map an aggregator transaction to transaction table fields."""
    timestamp = transaction.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    return {
        "id": transaction.transaction_id,
        "account_id": account_id,
        "timestamp": timestamp,
        "amount": transaction.amount,
        "currency": transaction.currency,
        "transaction_type": transaction.transaction_type,
        "category": transaction.transaction_category,
        "description": transaction.description,
        "merchant_name": transaction.merchant_name,
    }


class Reconciler:
    """Reconciles the stored transactions of one account at a time."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source: TransactionSource,
        config: Optional[SyncConfig] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize the reconciler.

        Args:
            session_factory: Factory for store sessions
            source: Aggregator client (anything with ``transactions``)
            config: Window and batch settings
            clock: Source of the current time
        """
        self._session_factory = session_factory
        self._source = source
        self.config = config or SyncConfig()
        self._clock = clock

    async def reconcile(self, account_id: str) -> ReconcileResult:
        """
        Run one reconciliation for an account.

        Store sessions are closed while the aggregator is being called.

        Returns:
            What was fetched, compared and written
        """
        now = self._clock()

        async with UnitOfWork(self._session_factory) as uow:
            has_any = await uow.transactions.has_any(account_id)

        if not has_any:
            return await self._first_sync(account_id, now)
        return await self._incremental_sync(account_id, now)

    async def _first_sync(self, account_id: str, now: datetime) -> ReconcileResult:
        start = now - self.config.get_history()
        logger.info(
            "sync.first_sync",
            account_id=account_id,
            start=start.isoformat(),
            end=now.isoformat(),
        )

        fresh = await self._fetch(account_id, start, now)
        result = ReconcileResult(
            account_id=account_id, mode="initial", fetched=len(fresh), changed=bool(fresh)
        )

        if fresh:
            rows = [to_row(t, account_id) for t in fresh]
            async with UnitOfWork(self._session_factory) as uow:
                await uow.transactions.insert_many(rows, self.config.batch_size)
            result.inserted = len(rows)

        logger.info(
            "sync.transactions_inserted",
            account_id=account_id,
            count=result.inserted,
        )
        return result

    async def _incremental_sync(
        self, account_id: str, now: datetime
    ) -> ReconcileResult:
        window_start = now - self.config.get_window()
        logger.info(
            "sync.incremental_sync",
            account_id=account_id,
            window_start=window_start.isoformat(),
        )

        async with UnitOfWork(self._session_factory) as uow:
            stored_ids = await uow.transactions.ids_since(account_id, window_start)

        fresh = [
            t
            for t in await self._fetch(account_id, window_start, now)
            if _as_utc(t.timestamp) >= window_start
        ]

        result = ReconcileResult(
            account_id=account_id,
            mode="incremental",
            fetched=len(fresh),
            stored_in_window=len(stored_ids),
        )

        if not has_changed(fresh, stored_ids):
            logger.info("sync.no_changes", account_id=account_id)
            return result

        logger.info(
            "sync.changes_detected",
            account_id=account_id,
            stored=len(stored_ids),
            fetched=len(fresh),
        )

        rows = [to_row(t, account_id) for t in fresh]
        async with UnitOfWork(self._session_factory) as uow:
            result.deleted = await uow.transactions.delete_since(account_id, window_start)
            # Stored copies dated before the window whose timestamp moved into it
            moved = await uow.transactions.delete_ids(
                account_id, [row["id"] for row in rows]
            )
            if moved:
                logger.warning(
                    "sync.transactions_moved_into_window",
                    account_id=account_id,
                    count=moved,
                )
            result.deleted += moved
            await uow.transactions.insert_many(rows, self.config.batch_size)

        result.changed = True
        result.inserted = len(rows)

        logger.info(
            "sync.window_replaced",
            account_id=account_id,
            deleted=result.deleted,
            inserted=result.inserted,
        )
        return result

    async def _fetch(
        self, account_id: str, start: datetime, end: datetime
    ) -> List[RemoteTransaction]:
        """Fetch transactions, keeping the first occurrence of each id."""
        seen = set()
        unique = []
        for transaction in await self._source.transactions(account_id, start, end):
            if transaction.transaction_id in seen:
                logger.warning(
                    "sync.duplicate_transaction_id",
                    account_id=account_id,
                    transaction_id=transaction.transaction_id,
                )
                continue
            seen.add(transaction.transaction_id)
            unique.append(transaction)
        return unique


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
