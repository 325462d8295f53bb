"""Provider repository with credential queries."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update

from fintrack.db.models.provider import Provider
from fintrack.db.repository import BaseRepository


class ProviderRepository(BaseRepository[Provider]):
    """Repository for Provider model."""

    async def add_if_absent(
        self, id: str, display_name: str, logo_url: Optional[str] = None
    ) -> bool:
        """
        Insert a provider without credentials.

        Returns:
            True if a new row was created, False if the id already existed
        """
        if await self.get_by_id(id) is not None:
            return False
        await self.create(id=id, display_name=display_name, logo_url=logo_url)
        return True

    async def get_connected(self) -> List[Provider]:
        """Get providers the user has completed the connect flow for."""
        query = (
            select(self.model)
            .where(self.model.refresh_token.isnot(None))
            .order_by(self.model.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update_credentials(
        self,
        id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> bool:
        """
        Overwrite the stored credentials of a provider in one statement.

        Returns:
            True if the provider row exists and was updated
        """
        result = await self.session.execute(
            update(self.model)
            .where(self.model.id == id)
            .values(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
            )
        )
        await self.session.flush()
        return (result.rowcount or 0) == 1  # type: ignore

    async def save_connected(
        self,
        id: str,
        display_name: str,
        logo_url: Optional[str],
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> Provider:
        """
        Store credentials obtained from the connect flow.

        Creates the provider if discovery has not seen it yet.
        """
        provider = await self.get_by_id(id)
        if provider is None:
            return await self.create(
                id=id,
                display_name=display_name,
                logo_url=logo_url,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
            )

        provider.access_token = access_token
        provider.refresh_token = refresh_token
        provider.expires_at = expires_at
        await self.session.flush()
        return provider
