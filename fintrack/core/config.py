from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./fintrack.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    This uses pydantic-settings so that we get type validation and defaults.
    Component-level configs (``SyncConfig``, ``TrueLayerConfig``) are built
    from this object via their ``from_settings`` constructors.
    """

    # App basics
    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: affects log rendering."""

    DEBUG: bool = True
    """Enable debug mode: verbose logging."""

    # DB
    DATABASE_URL: Optional[str] = None
    """Database connection URL. If None, uses SQLite for development."""

    # TrueLayer
    TRUELAYER_CLIENT_ID: str = ""
    """OAuth2 client id issued by TrueLayer."""

    TRUELAYER_CLIENT_SECRET: str = ""
    """OAuth2 client secret issued by TrueLayer."""

    TRUELAYER_ENV: Literal["sandbox", "live"] = "sandbox"
    """Which TrueLayer environment to talk to."""

    TRUELAYER_TIMEOUT: Optional[float] = 30.0
    """HTTP timeout in seconds for aggregator calls (None disables it)."""

    # Synchronization
    SYNC_ENABLED: bool = True
    """Start the background sync scheduler with the application."""

    SYNC_INTERVAL_SECONDS: int = 300
    """Pause between two sync passes."""

    SYNC_WINDOW_DAYS: int = 30
    """Trailing window re-fetched and compared on incremental syncs."""

    SYNC_HISTORY_DAYS: int = 365 * 6
    """History fetched on the first sync of an account."""

    SYNC_BATCH_SIZE: int = 100
    """Rows per multi-row INSERT statement."""

    DISCOVER_ON_STARTUP: bool = True
    """Discover providers and accounts before serving requests."""

    # Model config
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL or DEFAULT_DATABASE_URL


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing .env repeatedly."""
    return Settings()
