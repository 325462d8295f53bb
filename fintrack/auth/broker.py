"""
Token broker.

Decides whether a stored access token can still be used and, when it
cannot, renews it through the aggregator and persists the new pair.
Every authenticated aggregator call goes through here, whether it comes
from the sync scheduler, the connect flow or a live API request.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Protocol, Union

import structlog

from fintrack.auth.credentials import StoredCredentials
from fintrack.core.clock import Clock, utc_now
from fintrack.truelayer.models import TokenResponse

logger = structlog.get_logger(__name__)


class SubjectKind(str, Enum):
    """How a token request identifies its provider."""

    PROVIDER = "provider"
    ACCOUNT = "account"


class CredentialSource(Protocol):
    async def for_provider(self, provider_id: str) -> StoredCredentials: ...

    async def for_account(self, account_id: str) -> StoredCredentials: ...

    async def save(
        self,
        provider_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> None: ...


class TokenRenewer(Protocol):
    async def renew_token(self, refresh_token: str) -> TokenResponse: ...


class TokenBroker:
    """
    Hands out valid access tokens, refreshing them when they expire.

    A token is reused while ``expires_at > now``; ``expires_at == now``
    already counts as expired. Refreshes are single-flight per provider:
    concurrent callers that find the same provider's token expired (keyed
    by the provider or by any of its accounts) all await one refresh task.
    Refresh errors propagate to every waiter and are never retried here.
    """

    def __init__(
        self,
        store: CredentialSource,
        renewer: TokenRenewer,
        clock: Clock = utc_now,
    ):
        """
        Initialize the broker.

        Args:
            store: Credential store adapter
            renewer: Anything exposing ``renew_token`` (the TrueLayer client)
            clock: Source of the current time
        """
        self._store = store
        self._renewer = renewer
        self._clock = clock
        self._inflight: Dict[str, asyncio.Task[str]] = {}

    async def get_token(
        self, subject_kind: Union[SubjectKind, str], subject_id: str
    ) -> str:
        """
        Return a usable access token for a provider or an account.

        Args:
            subject_kind: ``provider`` or ``account``
            subject_id: Provider id or account id

        Returns:
            Access token

        Raises:
            CredentialsNotFoundError: Nothing stored for the subject
            AuthError, UpstreamError, NetworkError, DecodeError: Refresh failed
        """
        kind = SubjectKind(subject_kind)
        if kind is SubjectKind.PROVIDER:
            credentials = await self._store.for_provider(subject_id)
        else:
            credentials = await self._store.for_account(subject_id)

        if credentials.expires_at > self._clock():
            return credentials.access_token

        return await self._refresh(credentials.provider_id)

    async def token_for_provider(self, provider_id: str) -> str:
        return await self.get_token(SubjectKind.PROVIDER, provider_id)

    async def token_for_account(self, account_id: str) -> str:
        return await self.get_token(SubjectKind.ACCOUNT, account_id)

    def refresh_in_flight(self, provider_id: str) -> bool:
        return provider_id in self._inflight

    async def _refresh(self, provider_id: str) -> str:
        task = self._inflight.get(provider_id)
        if task is None or task.done():
            task = asyncio.create_task(self._renew(provider_id))
            self._inflight[provider_id] = task
        else:
            logger.debug("broker.refresh_joined", provider_id=provider_id)

        # A cancelled waiter must not cancel the refresh other callers share
        return await asyncio.shield(task)

    async def _renew(self, provider_id: str) -> str:
        try:
            return await self._renew_stored(provider_id)
        finally:
            # The entry never outlives the running task
            if self._inflight.get(provider_id) is asyncio.current_task():
                del self._inflight[provider_id]

    async def _renew_stored(self, provider_id: str) -> str:
        # Another refresh may have completed since the caller read its copy
        credentials = await self._store.for_provider(provider_id)
        if credentials.expires_at > self._clock():
            return credentials.access_token

        logger.info(
            "broker.refreshing_token",
            provider_id=provider_id,
            expired_at=credentials.expires_at.isoformat(),
        )

        try:
            token = await self._renewer.renew_token(credentials.refresh_token)
        except Exception as e:
            logger.warning(
                "broker.refresh_failed",
                provider_id=provider_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        expires_at = self._clock() + timedelta(seconds=token.expires_in)
        await self._store.save(
            provider_id, token.access_token, token.refresh_token, expires_at
        )

        logger.info(
            "broker.token_refreshed",
            provider_id=provider_id,
            expires_at=expires_at.isoformat(),
        )
        return token.access_token
