"""
Account Models for Trove

An account is a named money container (bank account, e-wallet, cash)
with a running balance.

DESIGN DECISION: `balance` is a cached value. The source of truth is
`initial_balance` plus the signed sum of the account's transactions.
Only the ledger writes `balance`; direct edits go through AccountUpdate,
which has no balance field at all.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize to aware UTC. Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AccountType(str, Enum):
    """Kinds of accounts a user can track."""
    SAVINGS = "SAVINGS"
    CHECKING = "CHECKING"
    E_WALLET = "E-WALLET"
    CASH = "CASH"


class Account(BaseModel):
    """
    A persisted account.

    Instances are snapshots read from storage. Mutating one does not
    change the stored row.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique account ID"
    )
    provider: str = Field(
        ...,
        min_length=1,
        description="Issuing institution, e.g. 'BDO' or 'GCash'"
    )
    nickname: Optional[str] = Field(
        default=None,
        description="Optional user-facing label"
    )
    account_name: str = Field(
        ...,
        min_length=1,
        description="Account holder name"
    )
    type: AccountType
    initial_balance: Decimal = Field(
        default=Decimal("0"),
        description="Balance at creation time (immutable)"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Cached running balance"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def display_name(self) -> str:
        """Label used in account pickers: nickname or holder name, plus provider."""
        label = self.nickname or self.account_name
        return f"{label} ({self.provider})"


class NewAccount(BaseModel):
    """
    Data for creating an account.

    Fields are deliberately lenient so that missing or empty values reach
    LedgerValidator and come back as a ValidationError with a clear message.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    provider: str = ""
    nickname: Optional[str] = None
    account_name: str = ""
    type: Optional[AccountType] = None
    initial_balance: Decimal = Decimal("0")


class AccountUpdate(BaseModel):
    """
    Field mask for editing an account.

    Only fields explicitly passed to the constructor are applied.
    `AccountUpdate(nickname=None)` clears the nickname;
    `AccountUpdate()` changes nothing.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    provider: Optional[str] = None
    nickname: Optional[str] = None
    account_name: Optional[str] = None
    type: Optional[AccountType] = None

    def changes(self) -> dict:
        """Return only the fields that were explicitly set."""
        return {name: getattr(self, name) for name in self.model_fields_set}
