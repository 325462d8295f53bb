import asyncio
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Ensure project root is on sys.path so `import fintrack` works when running pytest from root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Force test settings before any fintrack imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SYNC_ENABLED"] = "false"
os.environ["DISCOVER_ON_STARTUP"] = "false"

from fintrack.core.config import Settings  # noqa: E402
from fintrack.core.context import AppContext  # noqa: E402
from fintrack.db.base import Base  # noqa: E402
from fintrack.db.unit_of_work import UnitOfWork  # noqa: E402
from fintrack.main import create_app  # noqa: E402
from tests.fixtures.truelayer import NOW, FakeUpstream, FixedClock  # noqa: E402

T = TypeVar("T")


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'fintrack-test.db'}"


@pytest_asyncio.fixture
async def engine(database_url):
    """
    Provide a fresh database per test.

    A file database rather than ``:memory:`` so that concurrent sessions
    get their own connections and still see the same tables.
    """
    test_engine = create_async_engine(
        database_url,
        echo=False,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


async def seed_provider(
    session_factory,
    provider_id: str = "ob-monzo",
    connected: bool = True,
    access_token: str = "stored-access",
    refresh_token: str = "stored-refresh",
    expires_at: Optional[datetime] = None,
) -> None:
    """Insert a provider, with credentials when ``connected``."""
    async with UnitOfWork(session_factory) as uow:
        if connected:
            await uow.providers.save_connected(
                id=provider_id,
                display_name=provider_id.upper(),
                logo_url=f"https://logos.example/{provider_id}.svg",
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at or NOW,
            )
        else:
            await uow.providers.add_if_absent(provider_id, provider_id.upper())


async def seed_account(
    session_factory, account_id: str, provider_id: str = "ob-monzo"
) -> None:
    async with UnitOfWork(session_factory) as uow:
        await uow.accounts.add_if_absent(account_id, provider_id, f"Account {account_id}")


def run_on_database(
    database_url: str,
    fn: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]],
) -> T:
    """
    Run ``fn(session_factory)`` from a synchronous test.

    HTTP tests drive the app through TestClient, which runs on its own
    event loop, so the database is seeded and inspected with a short-lived
    engine on a loop of its own.
    """

    async def run() -> T:
        test_engine = create_async_engine(database_url, echo=False)
        try:
            async with test_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            factory = async_sessionmaker(
                test_engine, class_=AsyncSession, expire_on_commit=False
            )
            return await fn(factory)
        finally:
            await test_engine.dispose()

    return asyncio.run(run())


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def build_app(database_url, clock, upstream):
    """Build the FastAPI app on the test database and the fake aggregator."""

    def build(**overrides):
        values = {
            "DATABASE_URL": database_url,
            "SYNC_ENABLED": False,
            "DISCOVER_ON_STARTUP": False,
            "TRUELAYER_CLIENT_ID": "fintrack-id",
            "TRUELAYER_CLIENT_SECRET": "s3cret",
            **overrides,
        }
        settings = Settings(_env_file=None, **values)
        context = AppContext.create(settings, transport=upstream.transport(), clock=clock)
        return create_app(settings, context)

    return build
