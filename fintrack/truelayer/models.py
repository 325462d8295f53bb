"""Wire models for TrueLayer responses."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Results(BaseModel, Generic[T]):
    """Envelope wrapping every data API response."""

    results: List[T]


class ErrorResponse(BaseModel):
    """Structured error body returned with 4xx responses."""

    error: str
    error_description: Optional[str] = None


class TokenResponse(BaseModel):
    """Token endpoint response for both grant types."""

    access_token: str
    expires_in: int
    refresh_token: str
    token_type: str


class Provider(BaseModel):
    """Entry of the supported providers list."""

    provider_id: str
    display_name: str
    logo_url: Optional[str] = None


class ProviderMetadata(BaseModel):
    provider_id: str
    display_name: str
    logo_uri: Optional[str] = None


class TokenMetadata(BaseModel):
    """Owner of an access token, as returned by ``/data/v1/me``."""

    provider: ProviderMetadata


class AccountNumber(BaseModel):
    iban: Optional[str] = None
    number: Optional[str] = None
    sort_code: Optional[str] = None


class Account(BaseModel):
    account_id: str
    account_type: Optional[str] = None
    account_number: Optional[AccountNumber] = None
    currency: Optional[str] = None
    display_name: str
    update_timestamp: Optional[str] = None
    provider: Optional[ProviderMetadata] = None
    description: Optional[str] = None


class AccountBalance(BaseModel):
    currency: str
    available: Optional[Decimal] = None
    current: Decimal
    overdraft: Optional[Decimal] = None
    update_timestamp: Optional[str] = None


class RunningBalance(BaseModel):
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


class Transaction(BaseModel):
    """Settled or pending transaction as returned by the data API."""

    transaction_id: str
    timestamp: datetime
    description: Optional[str] = None
    transaction_type: Optional[str] = None
    transaction_category: Optional[str] = None
    transaction_classification: List[str] = Field(default_factory=list)
    merchant_name: Optional[str] = None
    amount: Decimal
    currency: str
    meta: Dict[str, Any] = Field(default_factory=dict)
    running_balance: Optional[RunningBalance] = None
