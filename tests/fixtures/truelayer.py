"""Sample TrueLayer payloads and test doubles shared by the test modules."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import httpx

from fintrack.errors import NetworkError
from fintrack.truelayer.models import TokenResponse, Transaction

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_transaction(
    transaction_id: str,
    timestamp: datetime,
    amount: str = "-12.50",
    currency: str = "GBP",
    category: Optional[str] = "PURCHASE",
    description: Optional[str] = "CARD PAYMENT",
    merchant_name: Optional[str] = None,
    transaction_type: Optional[str] = "DEBIT",
) -> Transaction:
    return Transaction(
        transaction_id=transaction_id,
        timestamp=timestamp,
        amount=Decimal(amount),
        currency=currency,
        transaction_category=category,
        description=description,
        merchant_name=merchant_name,
        transaction_type=transaction_type,
    )


def transaction_payload(transaction_id: str, timestamp: str, amount: float) -> Dict:
    """Transaction as it appears on the wire."""
    return {
        "transaction_id": transaction_id,
        "timestamp": timestamp,
        "description": "SAINSBURYS",
        "transaction_type": "DEBIT",
        "transaction_category": "PURCHASE",
        "transaction_classification": ["Shopping", "Groceries"],
        "merchant_name": "Sainsbury's",
        "amount": amount,
        "currency": "GBP",
        "meta": {"provider_category": "POS"},
    }


def token_response(access_token: str = "new-access", expires_in: int = 3600) -> TokenResponse:
    return TokenResponse(
        access_token=access_token,
        refresh_token=f"{access_token}-refresh",
        expires_in=expires_in,
        token_type="Bearer",
    )


class FakeTransactionSource:
    """Aggregator double serving canned transactions per account."""

    def __init__(self):
        self.transactions_by_account: Dict[str, List[Transaction]] = {}
        self.failing_accounts: Set[str] = set()
        self.calls: List[Tuple[str, datetime, datetime]] = []

    def set(self, account_id: str, transactions: List[Transaction]) -> None:
        self.transactions_by_account[account_id] = list(transactions)

    async def transactions(
        self, account_id: str, start: datetime, end: datetime
    ) -> List[Transaction]:
        self.calls.append((account_id, start, end))
        if account_id in self.failing_accounts:
            raise NetworkError(f"connection reset fetching {account_id}")
        return list(self.transactions_by_account.get(account_id, []))


class FakeUpstream:
    """
    httpx.MockTransport handler routing on (method, path).

    Routes are factories so every request gets a fresh response.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def route(self, method: str, path: str, status: int = 200, json: Any = None) -> None:
        self.routes[(method, path)] = lambda request: httpx.Response(status, json=json)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, text=f"no route for {request.method} {request.url.path}")
        return handler(request)

    def sent(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def token_payload(access_token: str = "new-access", expires_in: int = 3600) -> Dict:
    return token_response(access_token, expires_in).model_dump()
