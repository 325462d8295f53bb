"""Account model."""

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from fintrack.db.base import Base


class Account(Base):
    """Bank account under a provider. Inserted once, never updated or deleted."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(
        String(255), primary_key=True, comment="Aggregator-assigned account id"
    )
    provider_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("providers.id"), nullable=False, index=True
    )
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, provider_id={self.provider_id})>"
