"""TrueLayer aggregator client."""

from fintrack.truelayer.client import CredentialProvider, TrueLayerClient
from fintrack.truelayer.config import TrueLayerConfig

__all__ = ["CredentialProvider", "TrueLayerClient", "TrueLayerConfig"]
