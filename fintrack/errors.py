"""
Error taxonomy shared by the aggregator client, the credential layer
and the store.

Callers decide how fatal an error is: the sync scheduler logs and moves
on to the next account, live API handlers turn it into an HTTP response,
startup discovery lets it abort the process.
"""

from typing import Optional


class FintrackError(Exception):
    """Base exception for all FinTrack errors."""

    pass


class NetworkError(FintrackError):
    """Raised when the transport to the aggregator fails."""

    pass


class AuthError(FintrackError):
    """Raised when the aggregator answers with a structured 4xx error."""

    def __init__(self, code: str, description: Optional[str] = None):
        self.code = code
        self.description = description
        message = f"{code}: {description}" if description else code
        super().__init__(message)


class UpstreamError(FintrackError):
    """Raised for any other non-success response from the aggregator."""

    def __init__(self, status: int):
        self.status = status
        super().__init__(f"request to TrueLayer failed with status: {status}")


class DecodeError(FintrackError):
    """Raised when a response body cannot be decoded."""

    pass


class StoreError(FintrackError):
    """Raised when a persistence operation fails."""

    pass


class CredentialsNotFoundError(StoreError):
    """Raised when no usable credentials are stored for a subject."""

    def __init__(self, subject_kind: str, subject_id: str):
        self.subject_kind = subject_kind
        self.subject_id = subject_id
        super().__init__(f"no credentials stored for {subject_kind} '{subject_id}'")
