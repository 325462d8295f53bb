"""Account repository."""

from typing import List, Optional

from sqlalchemy import select

from fintrack.db.models.account import Account
from fintrack.db.models.provider import Provider
from fintrack.db.repository import BaseRepository


class AccountRepository(BaseRepository[Account]):
    """Repository for Account model."""

    async def get_all_ordered(self) -> List[Account]:
        """Get every account in a stable order (by id)."""
        result = await self.session.execute(select(self.model).order_by(self.model.id))
        return list(result.scalars().all())

    async def add_if_absent(self, id: str, provider_id: str, display_name: str) -> bool:
        """
        Insert an account the first time it is discovered.

        Accounts are immutable once stored, so an existing row is left as is.

        Returns:
            True if a new row was created, False if the id already existed
        """
        if await self.get_by_id(id) is not None:
            return False
        await self.create(id=id, provider_id=provider_id, display_name=display_name)
        return True

    async def get_owning_provider(self, account_id: str) -> Optional[Provider]:
        """
        Get the provider an account belongs to.

        Args:
            account_id: Account id

        Returns:
            Owning provider, or None if the account is unknown
        """
        query = (
            select(Provider)
            .join(self.model, self.model.provider_id == Provider.id)
            .where(self.model.id == account_id)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
