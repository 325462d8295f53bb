"""
TrueLayer API client.

Wraps the token endpoint and the data API. Every authenticated call
resolves its bearer token through an injected credential provider, keyed
either by provider id or by account id.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Protocol, Type, TypeVar
from urllib.parse import quote, urlencode

import httpx
import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from fintrack.errors import AuthError, DecodeError, NetworkError, UpstreamError
from fintrack.truelayer.config import AUTH_PROVIDERS, AUTH_SCOPES, TrueLayerConfig
from fintrack.truelayer.models import (
    Account,
    AccountBalance,
    ErrorResponse,
    Provider,
    Results,
    TokenMetadata,
    TokenResponse,
    Transaction,
)

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class CredentialProvider(Protocol):
    """Source of bearer tokens for the data API."""

    async def token_for_provider(self, provider_id: str) -> str: ...

    async def token_for_account(self, account_id: str) -> str: ...


class TrueLayerClient:
    """
    Async client for the TrueLayer auth and data APIs.

    Holds no state besides its HTTP transport and the credential provider.
    The credential provider is usually the token broker, which itself needs
    this client to renew tokens, so it may be attached after construction
    with ``use_credentials``.
    """

    def __init__(
        self,
        config: TrueLayerConfig,
        credentials: Optional[CredentialProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Client credentials and environment
            credentials: Bearer token source for authenticated calls
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.config = config
        self._credentials = credentials
        self._http = httpx.AsyncClient(
            timeout=config.timeout,
            transport=transport,
        )

    def use_credentials(self, credentials: CredentialProvider) -> None:
        """Attach the credential provider used by authenticated calls."""
        self._credentials = credentials

    async def aclose(self) -> None:
        """Release the underlying HTTP connection pool."""
        await self._http.aclose()

    # Auth API

    def auth_link(self, callback: str) -> str:
        """Build the URL the user is sent to in order to connect a provider."""
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.config.client_id,
                "scope": AUTH_SCOPES,
                "redirect_uri": callback,
                "providers": AUTH_PROVIDERS[self.config.env],
            },
            quote_via=quote,
        )
        return f"{self.config.auth_url}/?{query}"

    async def exchange_code(self, code: str, callback: str) -> TokenResponse:
        """Exchange an authorization code for an access/refresh token pair."""
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": callback,
            }
        )

    async def renew_token(self, refresh_token: str) -> TokenResponse:
        """Exchange a refresh token for a new access/refresh token pair."""
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )

    async def token_metadata(self, access_token: str) -> TokenMetadata:
        """Resolve an access token to the provider it was issued for."""
        response = await self._send(
            "GET", f"{self.config.api_url}/data/v1/me", access_token=access_token
        )
        results = self._decode(response, Results[TokenMetadata]).results
        if not results:
            raise DecodeError("invalid metadata response: empty results")
        return results[0]

    async def supported_providers(self) -> List[Provider]:
        """List the providers the aggregator can connect to."""
        response = await self._send("GET", f"{self.config.auth_url}/api/providers")
        try:
            return TypeAdapter(List[Provider]).validate_json(response.content)
        except ValidationError as e:
            raise DecodeError(f"invalid providers response: {e}") from e

    # Data API

    async def accounts(self, provider_id: str) -> List[Account]:
        """List the accounts of a connected provider."""
        token = await self._require_credentials().token_for_provider(provider_id)
        response = await self._send(
            "GET", f"{self.config.api_url}/data/v1/accounts", access_token=token
        )
        return self._decode(response, Results[Account]).results

    async def account_balance(self, account_id: str) -> AccountBalance:
        """Get the current balance of an account."""
        token = await self._require_credentials().token_for_account(account_id)
        response = await self._send(
            "GET",
            f"{self.config.api_url}/data/v1/accounts/{account_id}/balance",
            access_token=token,
        )
        results = self._decode(response, Results[AccountBalance]).results
        if not results:
            raise DecodeError("invalid account balance response: empty results")
        return results[0]

    async def transactions(
        self, account_id: str, start: datetime, end: datetime
    ) -> List[Transaction]:
        """
        List settled transactions of an account in ``[start, end]``.

        Args:
            account_id: Account id
            start: Start of the range (timezone-aware)
            end: End of the range (timezone-aware)

        Returns:
            Transactions as returned by the API
        """
        token = await self._require_credentials().token_for_account(account_id)
        response = await self._send(
            "GET",
            f"{self.config.api_url}/data/v1/accounts/{account_id}/transactions",
            access_token=token,
            params={"from": _format_timestamp(start), "to": _format_timestamp(end)},
        )
        return self._decode(response, Results[Transaction]).results

    async def pending_transactions(self, account_id: str) -> List[Transaction]:
        """List transactions of an account that have not settled yet."""
        token = await self._require_credentials().token_for_account(account_id)
        response = await self._send(
            "GET",
            f"{self.config.api_url}/data/v1/accounts/{account_id}/transactions/pending",
            access_token=token,
        )
        return self._decode(response, Results[Transaction]).results

    # Internals

    def _require_credentials(self) -> CredentialProvider:
        if self._credentials is None:
            raise RuntimeError("no credential provider attached to TrueLayerClient")
        return self._credentials

    async def _token_request(self, form: dict[str, str]) -> TokenResponse:
        data = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            **form,
        }
        response = await self._send(
            "POST", f"{self.config.auth_url}/connect/token", data=data
        )
        return self._decode(response, TokenResponse)

    async def _send(
        self,
        method: str,
        url: str,
        access_token: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and raise the matching FinTrack error on failure."""
        headers = {}
        if access_token is not None:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.warning(
                "truelayer.transport_error",
                method=method,
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise NetworkError(str(e)) from e

        if not response.is_success:
            raise _classify_error(response)

        return response

    @staticmethod
    def _decode(response: httpx.Response, model: Type[M]) -> M:
        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            raise DecodeError(f"invalid {model.__name__} response: {e}") from e


def _classify_error(response: httpx.Response) -> Exception:
    """Map a non-success response to AuthError or UpstreamError."""
    status = response.status_code

    if response.is_client_error:
        try:
            body = ErrorResponse.model_validate_json(response.content)
        except ValidationError:
            body = None
        if body is not None:
            logger.warning(
                "truelayer.client_error",
                status=status,
                error=body.error,
                error_description=body.error_description,
            )
            return AuthError(body.error, body.error_description)

    logger.warning("truelayer.upstream_error", status=status)
    return UpstreamError(status)


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
