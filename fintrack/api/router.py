"""
Read API routes.

Providers and stored transactions are served from the database; accounts,
balances and pending transactions are fetched live from the aggregator.
Aggregator and store errors are turned into HTTP responses by the
exception handlers registered in ``fintrack.main``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from fintrack.core.context import AppContext, get_context
from fintrack.db.models import Transaction as StoredTransaction
from fintrack.db.unit_of_work import UnitOfWork
from fintrack.truelayer.models import Account, AccountBalance, Transaction

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


class ProviderResponse(BaseModel):
    """Connected provider."""

    id: str
    name: str
    logo: Optional[str] = None


class StoredTransactionResponse(BaseModel):
    """Transaction as stored by the sync engine."""

    id: str
    account_id: str
    timestamp: datetime
    amount: Decimal
    currency: str
    type: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    merchant_name: Optional[str] = None

    @classmethod
    def from_model(cls, transaction: StoredTransaction) -> "StoredTransactionResponse":
        return cls(
            id=transaction.id,
            account_id=transaction.account_id,
            timestamp=transaction.timestamp,
            amount=transaction.amount,
            currency=transaction.currency,
            type=transaction.transaction_type,
            category=transaction.category,
            description=transaction.description,
            merchant_name=transaction.merchant_name,
        )


class SyncStatusResponse(BaseModel):
    """Scheduler state and recent pass metrics."""

    running: bool
    enabled: bool
    last_pass: Optional[Dict[str, Any]]
    recent_passes: List[Dict[str, Any]]
    aggregate: Dict[str, Any]
    config: Dict[str, Any]


@router.get("/providers", response_model=List[ProviderResponse])
async def get_connected_providers(context: AppContext = Depends(get_context)):
    """List providers the user has connected."""
    async with UnitOfWork(context.session_factory) as uow:
        providers = await uow.providers.get_connected()

    return [
        ProviderResponse(id=p.id, name=p.display_name, logo=p.logo_url)
        for p in providers
    ]


@router.get("/accounts", response_model=List[Account])
async def get_accounts(
    provider: str = Query(..., description="Provider id"),
    context: AppContext = Depends(get_context),
):
    """List the accounts of a provider, live from the aggregator."""
    return await context.client.accounts(provider)


@router.get("/accounts/{account_id}/balance", response_model=AccountBalance)
async def get_account_balance(account_id: str, context: AppContext = Depends(get_context)):
    """Current balance of an account, live from the aggregator."""
    return await context.client.account_balance(account_id)


@router.get(
    "/accounts/{account_id}/transactions",
    response_model=List[StoredTransactionResponse],
)
async def get_account_transactions(
    account_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=10000),
    context: AppContext = Depends(get_context),
):
    """Stored transactions of an account, newest first."""
    async with UnitOfWork(context.session_factory) as uow:
        transactions = await uow.transactions.get_for_account(account_id, limit=limit)

    return [StoredTransactionResponse.from_model(t) for t in transactions]


@router.get(
    "/accounts/{account_id}/transactions/pending", response_model=List[Transaction]
)
async def get_pending_transactions(
    account_id: str, context: AppContext = Depends(get_context)
):
    """Transactions of an account that have not settled yet, live."""
    return await context.client.pending_transactions(account_id)


@router.get("/sync/status", response_model=SyncStatusResponse)
async def get_sync_status(context: AppContext = Depends(get_context)):
    """Background scheduler state and recent pass metrics."""
    return context.scheduler.get_status()
