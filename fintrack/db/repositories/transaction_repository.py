"""Transaction repository with sync window queries."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import insert, select

from fintrack.db.models.transaction import Transaction
from fintrack.db.repository import BaseRepository

DEFAULT_BATCH_SIZE = 100


class TransactionRepository(BaseRepository[Transaction]):
    """Repository for Transaction model with specialized queries."""

    async def has_any(self, account_id: str) -> bool:
        """Return True if at least one transaction is stored for the account."""
        return await self.exists(account_id=account_id)

    async def ids_since(self, account_id: str, since: datetime) -> List[str]:
        """
        Get the ids of an account's transactions made at or after ``since``.

        Args:
            account_id: Account id
            since: Inclusive lower bound on the transaction timestamp

        Returns:
            List of transaction ids
        """
        query = select(self.model.id).where(
            self.model.account_id == account_id,
            self.model.timestamp >= since,
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def delete_since(self, account_id: str, since: datetime) -> int:
        """
        Delete an account's transactions made at or after ``since``.

        Returns:
            Number of rows deleted
        """
        return await self.delete_where(account_id=account_id, timestamp__gte=since)

    async def delete_ids(self, account_id: str, ids: Sequence[str]) -> int:
        """
        Delete an account's transactions by id, whatever their timestamp.

        Returns:
            Number of rows deleted
        """
        if not ids:
            return 0
        return await self.delete_where(account_id=account_id, id__in=list(ids))

    async def get_for_account(
        self, account_id: str, limit: Optional[int] = None
    ) -> List[Transaction]:
        """Get an account's stored transactions, newest first."""
        query = (
            select(self.model)
            .where(self.model.account_id == account_id)
            .order_by(self.model.timestamp.desc(), self.model.id)
        )
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def insert_many(
        self,
        rows: Sequence[Dict[str, Any]],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> List[int]:
        """
        Insert transactions with one multi-row INSERT per batch.

        Rows are keyed by model attribute name (``transaction_type``, not the
        ``type`` column) and must all carry the same keys. SQLAlchemy's
        multi-values construct keeps every row aligned with its placeholders.

        Args:
            rows: Transaction field dictionaries
            batch_size: Maximum rows per statement

        Returns:
            Size of each executed batch, in order
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        table = self.model.__table__
        batches: List[int] = []

        for start in range(0, len(rows), batch_size):
            chunk = rows[start : start + batch_size]
            await self.session.execute(
                insert(table).values([self._to_columns(row) for row in chunk])
            )
            batches.append(len(chunk))

        await self.session.flush()
        return batches

    def _to_columns(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Re-key a row from attribute names to column keys."""
        columns = self.model.__mapper__.columns
        return {columns[name].key: value for name, value in row.items()}
