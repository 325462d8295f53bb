"""
Credential store adapter.

Reads and writes the provider-scoped OAuth credentials. Accounts carry no
credentials of their own; looking one up by account id resolves the
owning provider's record. No policy lives here.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fintrack.db.models import Provider
from fintrack.db.unit_of_work import UnitOfWork
from fintrack.errors import CredentialsNotFoundError


@dataclass(frozen=True)
class StoredCredentials:
    """Credential record of one provider."""

    provider_id: str
    access_token: str
    refresh_token: str
    expires_at: datetime


class CredentialStore:
    """Store-backed access to provider credentials."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def for_provider(self, provider_id: str) -> StoredCredentials:
        """
        Load the credentials of a provider.

        Raises:
            CredentialsNotFoundError: Unknown provider, or never connected
        """
        async with UnitOfWork(self._session_factory) as uow:
            provider = await uow.providers.get_by_id(provider_id)
        return _to_credentials(provider, "provider", provider_id)

    async def for_account(self, account_id: str) -> StoredCredentials:
        """
        Load the credentials of the provider owning an account.

        Raises:
            CredentialsNotFoundError: Unknown account, or provider never connected
        """
        async with UnitOfWork(self._session_factory) as uow:
            provider = await uow.accounts.get_owning_provider(account_id)
        return _to_credentials(provider, "account", account_id)

    async def save(
        self,
        provider_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> None:
        """Overwrite a provider's credentials in a single transaction."""
        async with UnitOfWork(self._session_factory) as uow:
            updated = await uow.providers.update_credentials(
                provider_id, access_token, refresh_token, expires_at
            )
        if not updated:
            raise CredentialsNotFoundError("provider", provider_id)


def _to_credentials(
    provider: Optional[Provider], subject_kind: str, subject_id: str
) -> StoredCredentials:
    if (
        provider is None
        or provider.access_token is None
        or provider.refresh_token is None
        or provider.expires_at is None
    ):
        raise CredentialsNotFoundError(subject_kind, subject_id)

    return StoredCredentials(
        provider_id=provider.id,
        access_token=provider.access_token,
        refresh_token=provider.refresh_token,
        expires_at=provider.expires_at,
    )
