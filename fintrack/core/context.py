"""
Application context.

Everything with state (engine, session factory, aggregator client, token
broker, reconciler, scheduler) is built once here at startup and stored
on ``app.state``; request handlers reach it through ``get_context``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from fintrack.auth.broker import TokenBroker
from fintrack.auth.credentials import CredentialStore
from fintrack.core.clock import Clock, utc_now
from fintrack.core.config import Settings
from fintrack.core.logging import sanitize_db_url
from fintrack.db.base import create_engine, create_session_factory
from fintrack.sync.config import SyncConfig
from fintrack.sync.metrics import SyncMetrics
from fintrack.sync.reconciler import Reconciler
from fintrack.sync.scheduler import SyncScheduler
from fintrack.truelayer.client import TrueLayerClient
from fintrack.truelayer.config import TrueLayerConfig

logger = structlog.get_logger(__name__)


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    client: TrueLayerClient
    credentials: CredentialStore
    broker: TokenBroker
    reconciler: Reconciler
    scheduler: SyncScheduler
    metrics: SyncMetrics
    clock: Clock = utc_now

    @classmethod
    def create(
        cls,
        settings: Settings,
        engine: Optional[AsyncEngine] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = utc_now,
    ) -> "AppContext":
        """
        Wire up every component from settings.

        Args:
            settings: Application settings
            engine: Existing engine to reuse (tests share theirs)
            transport: Optional httpx transport for the aggregator client
            clock: Source of the current time
        """
        if engine is None:
            engine = create_engine(settings.database_url, echo=False)
            logger.info(
                "context.engine_created",
                database=sanitize_db_url(settings.database_url),
            )
        session_factory = create_session_factory(engine)

        # The broker renews tokens through the client and the client asks
        # the broker for tokens, so credentials are attached afterwards.
        client = TrueLayerClient(
            TrueLayerConfig.from_settings(settings), transport=transport
        )
        credentials = CredentialStore(session_factory)
        broker = TokenBroker(credentials, client, clock=clock)
        client.use_credentials(broker)

        sync_config = SyncConfig.from_settings(settings)
        metrics = SyncMetrics()
        reconciler = Reconciler(session_factory, client, sync_config, clock=clock)
        scheduler = SyncScheduler(
            session_factory, reconciler, sync_config, metrics=metrics, clock=clock
        )

        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            client=client,
            credentials=credentials,
            broker=broker,
            reconciler=reconciler,
            scheduler=scheduler,
            metrics=metrics,
            clock=clock,
        )

    async def aclose(self) -> None:
        """Release the HTTP transport and the connection pool."""
        await self.client.aclose()
        await self.engine.dispose()


def get_context(request: Request) -> AppContext:
    """FastAPI dependency returning the context built by the lifespan."""
    return request.app.state.context
