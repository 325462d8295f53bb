"""Database models for FinTrack."""

from .provider import Provider
from .account import Account
from .transaction import Transaction

__all__ = ["Provider", "Account", "Transaction"]
