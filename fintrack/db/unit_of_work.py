"""Unit of Work pattern for managing database transactions."""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fintrack.db.models import Account, Provider, Transaction
from fintrack.db.repositories import (
    AccountRepository,
    ProviderRepository,
    TransactionRepository,
)
from fintrack.errors import StoreError


class UnitOfWork:
    """
    Unit of Work pattern implementation for managing database transactions.

    Every store operation in FinTrack runs inside exactly one unit of work,
    so each one is atomic: it commits when the block exits cleanly and rolls
    back otherwise. Database failures surface as ``StoreError``.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            if not await uow.transactions.has_any(account_id):
                await uow.transactions.insert_many(rows)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        session: Optional[AsyncSession] = None,
    ):
        """
        Initialize Unit of Work.

        Args:
            session_factory: Factory used to open a session owned by this unit
            session: Optional existing session (useful for testing); the
                caller keeps ownership and decides when to commit
        """
        if session_factory is None and session is None:
            raise ValueError("UnitOfWork needs a session_factory or a session")

        self._session_factory = session_factory
        self._session = session
        self._owned_session = session is None

        # Repositories (initialized in __aenter__)
        self.providers: ProviderRepository = None  # type: ignore
        self.accounts: AccountRepository = None  # type: ignore
        self.transactions: TransactionRepository = None  # type: ignore

    async def __aenter__(self):
        """Enter async context manager."""
        if self._owned_session:
            assert self._session_factory is not None
            self._session = self._session_factory()

        assert self._session is not None, "Session must be initialized"
        self.providers = ProviderRepository(Provider, self._session)
        self.accounts = AccountRepository(Account, self._session)
        self.transactions = TransactionRepository(Transaction, self._session)

        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        try:
            if exc_type is not None:
                await self.rollback()
            elif self._owned_session:
                await self.commit()
        finally:
            if self._owned_session and self._session:
                await self._session.close()

        if isinstance(exc_val, SQLAlchemyError):
            raise StoreError(str(exc_val)) from exc_val
        return False

    async def commit(self):
        """Commit the current transaction."""
        if self._session:
            try:
                await self._session.commit()
            except SQLAlchemyError as e:
                await self._session.rollback()
                raise StoreError(str(e)) from e

    async def rollback(self):
        """Rollback the current transaction."""
        if self._session:
            await self._session.rollback()

    async def flush(self):
        """Flush pending changes to the database without committing."""
        if self._session:
            await self._session.flush()
