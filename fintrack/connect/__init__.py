"""Provider connection: OAuth connect flow and startup discovery."""

from fintrack.connect.service import (
    complete_connection,
    discover_accounts,
    discover_providers,
    fetch_provider_accounts,
)

__all__ = [
    "complete_connection",
    "discover_accounts",
    "discover_providers",
    "fetch_provider_accounts",
]
