"""Transaction model for storing synchronized account transactions."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fintrack.db.base import Base
from fintrack.db.types import ExactDecimal, UTCDateTime


class Transaction(Base):
    """
    Settled transaction fetched from the aggregator.

    This is the volatile part of the schema: rows inside the sync window
    are deleted and reinserted whenever the reconciler detects a change.
    """

    __tablename__ = "transactions"

    # (account_id, id) identifies a row
    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Aggregator-assigned transaction id, unique per account",
    )
    account_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("accounts.id"), primary_key=True
    )

    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, comment="When the transaction occurred"
    )
    amount: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        nullable=False,
        comment="Signed amount in the transaction currency",
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, comment="Currency code (ISO 4217)"
    )
    transaction_type: Mapped[Optional[str]] = mapped_column(
        "type", String(50), nullable=True, comment="e.g. 'DEBIT', 'CREDIT'"
    )
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    merchant_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_transaction_account_timestamp", "account_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, account_id={self.account_id}, "
            f"amount={self.amount}, currency={self.currency})>"
        )
