"""OAuth credential lifecycle: storage adapter and token broker."""

from fintrack.auth.broker import SubjectKind, TokenBroker
from fintrack.auth.credentials import CredentialStore, StoredCredentials

__all__ = ["SubjectKind", "TokenBroker", "CredentialStore", "StoredCredentials"]
