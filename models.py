from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal, localcontext

MAX_CLIENT_ID = 2**16 - 1
MAX_TRANSACTION_ID = 2**32 - 1

# Largest amount a single row may carry
AMOUNT_MAX_DIGITS = 20
AMOUNT_DECIMAL_PLACES = 8


class TransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"


class TransactionKind(str, Enum):
    """Kinds of transaction stored in the log. Dispute-family records act on these."""
    deposit = "deposit"
    withdrawal = "withdrawal"


class TransactionRecord(BaseModel):
    """One decoded input row."""

    model_config = ConfigDict(populate_by_name=True)

    transaction_type: TransactionType = Field(..., alias="type", description="Record type")
    client_id: int = Field(
        ...,
        alias="client",
        ge=0,
        le=MAX_CLIENT_ID,
        description="Client identifier (unsigned 16-bit)"
    )
    transaction_id: int = Field(
        ...,
        alias="tx",
        ge=0,
        le=MAX_TRANSACTION_ID,
        description="Transaction identifier (unsigned 32-bit)"
    )
    amount: Optional[Decimal] = Field(
        None,
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        description="Amount, present for deposits and withdrawals"
    )

    @field_validator('transaction_type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator('amount', mode='before')
    @classmethod
    def empty_amount_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
        return v

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        if v is None:
            return v
        if not v.is_finite():
            raise ValueError('Amount must be a finite number')
        if v < 0:
            raise ValueError('Amount cannot be negative')
        return v


class Account(BaseModel):
    available: Decimal = Decimal("0")
    held: Decimal = Decimal("0")
    locked: bool = False

    @property
    def total(self) -> Decimal:
        # Each side fits 28 digits; the sum may need more
        with localcontext() as ctx:
            ctx.prec = 60
            return self.available + self.held


class LedgerTransaction(BaseModel):
    kind: TransactionKind
    client_id: int
    amount: Decimal
    disputed: bool = False


class AccountSnapshot(BaseModel):
    client: int = Field(..., description="Client identifier")
    available: Decimal = Field(..., description="Funds available to withdraw or dispute")
    held: Decimal = Field(..., description="Funds held by open disputes")
    total: Decimal = Field(..., description="available + held")
    locked: bool = Field(..., description="Whether a chargeback locked the account")

    @classmethod
    def from_account(cls, client_id: int, account: Account) -> "AccountSnapshot":
        return cls(
            client=client_id,
            available=account.available,
            held=account.held,
            total=account.total,
            locked=account.locked,
        )


class CSVProcessingResponse(BaseModel):
    rows: int = Field(..., description="Data rows read")
    applied: int = Field(..., description="Rows applied to the ledger")
    rejected: int = Field(..., description="Rows rejected")
    errors: List[str] = Field(default_factory=list, description="One message per rejected row")


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    details: Dict[str, Any] = Field(default_factory=dict, description="Structured error fields")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=datetime.now)
    accounts_count: int = Field(..., description="Number of accounts in the ledger")
    transactions_count: int = Field(..., description="Deposits and withdrawals recorded")
