"""Provider model: one connected (or connectable) financial institution."""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fintrack.db.base import Base
from fintrack.db.types import UTCDateTime


class Provider(Base):
    """
    Financial institution known to the aggregator.

    Rows are created by provider discovery with empty credentials; the
    credential columns are filled once the user completes the connect flow
    and rewritten by the token broker on every refresh.
    """

    __tablename__ = "providers"

    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Aggregator-assigned provider id (e.g. 'ob-monzo')",
    )
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    logo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Credentials
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
        comment="When access_token stops being accepted",
    )

    @property
    def is_connected(self) -> bool:
        return self.refresh_token is not None

    def __repr__(self) -> str:
        return (
            f"<Provider(id={self.id}, display_name={self.display_name}, "
            f"connected={self.is_connected})>"
        )
