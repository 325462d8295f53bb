"""Database initialization utilities."""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from fintrack.core.config import get_settings
from fintrack.core.logging import sanitize_db_url
from fintrack.db.base import Base, create_engine

# Import all models to register them with Base.metadata
from fintrack.db.models import Account, Provider, Transaction  # noqa: F401

logger = structlog.get_logger(__name__)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all database tables that do not exist yet."""
    logger.info("db.create_tables", url=sanitize_db_url(str(engine.url)))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db.tables_ready")


async def drop_tables(engine: AsyncEngine) -> None:
    """Drop all database tables (use with caution!)."""
    logger.warning("db.drop_tables", url=sanitize_db_url(str(engine.url)))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("db.tables_dropped")


async def reset_database(engine: AsyncEngine) -> None:
    """Reset database by dropping and recreating all tables."""
    if get_settings().ENV == "production":
        raise RuntimeError("Cannot reset database in production environment!")

    await drop_tables(engine)
    await create_tables(engine)
    logger.info("db.reset_complete")


async def _run(command: str) -> None:
    engine = create_engine(get_settings().database_url)
    try:
        if command == "create":
            await create_tables(engine)
        elif command == "drop":
            await drop_tables(engine)
        elif command == "reset":
            await reset_database(engine)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2 or sys.argv[1] not in ("create", "drop", "reset"):
        print("Usage: python -m fintrack.db.init [create|drop|reset]")
        sys.exit(1)

    command = sys.argv[1]
    if command != "create":
        target = sanitize_db_url(get_settings().database_url)
        response = input(f"WARNING: this will {command} all tables in {target}. Continue? (yes/no): ")
        if response.lower() != "yes":
            print("Cancelled.")
            sys.exit(0)

    asyncio.run(_run(command))
