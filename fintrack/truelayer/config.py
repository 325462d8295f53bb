"""TrueLayer client configuration."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from fintrack.core.config import Settings

HOSTNAMES = {
    "sandbox": "truelayer-sandbox.com",
    "live": "truelayer.com",
}

# Providers offered on the authorization page
AUTH_PROVIDERS = {
    "sandbox": "uk-ob-all uk-oauth-all uk-cs-mock",
    "live": "uk-ob-all uk-oauth-all",
}

AUTH_SCOPES = (
    "info accounts balance cards transactions "
    "direct_debits standing_orders offline_access"
)


class TrueLayerConfig(BaseModel):
    """Credentials and environment for the aggregator API."""

    client_id: str = Field(default="", description="OAuth2 client id")
    client_secret: str = Field(default="", description="OAuth2 client secret")
    env: Literal["sandbox", "live"] = Field(
        default="sandbox", description="TrueLayer environment"
    )
    timeout: Optional[float] = Field(
        default=30.0, description="HTTP timeout in seconds (None disables)"
    )

    @property
    def hostname(self) -> str:
        return HOSTNAMES[self.env]

    @property
    def auth_url(self) -> str:
        return f"https://auth.{self.hostname}"

    @property
    def api_url(self) -> str:
        return f"https://api.{self.hostname}"

    @classmethod
    def from_settings(cls, settings: Settings) -> "TrueLayerConfig":
        return cls(
            client_id=settings.TRUELAYER_CLIENT_ID,
            client_secret=settings.TRUELAYER_CLIENT_SECRET,
            env=settings.TRUELAYER_ENV,
            timeout=settings.TRUELAYER_TIMEOUT,
        )
