"""Repository exports."""

from .provider_repository import ProviderRepository
from .account_repository import AccountRepository
from .transaction_repository import TransactionRepository

__all__ = [
    "ProviderRepository",
    "AccountRepository",
    "TransactionRepository",
]
