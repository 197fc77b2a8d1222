"""
Transaction Models for Trove

A transaction is a single earning or expense event affecting exactly
one account. A transfer is stored as two linked transactions: an
EXPENSE leg on the source account and an EARNING leg on the destination,
sharing one transfer_id.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from trove.models.account import AccountType, as_utc, utc_now


class TransactionType(str, Enum):
    """Direction of a transaction."""
    EARNING = "EARNING"
    EXPENSE = "EXPENSE"


EXPENSE_CATEGORIES = (
    "Food",
    "Housing",
    "Health",
    "Travel",
    "Education",
    "Shopping",
    "Transportation",
    "Entertainment",
    "Gifts & Charity",
    "Other",
)

EARNING_CATEGORIES = (
    "Salary",
    "Freelance",
    "Business",
    "Investments",
    "Refunds",
    "Gifts",
    "Other",
)

TRANSFER_CATEGORY = "Transfer"


def signed_amount(tx_type: TransactionType, amount: Decimal) -> Decimal:
    """EARNING adds to a balance, EXPENSE subtracts."""
    return amount if tx_type == TransactionType.EARNING else -amount


class Transaction(BaseModel):
    """A persisted transaction."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(
        ...,
        min_length=1,
        description="Description shown in the history list"
    )
    type: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount; the sign comes from type"
    )
    occurred_at: datetime = Field(
        default_factory=utc_now,
        description="When the transaction happened (user-assigned)"
    )
    category: str = Field(..., min_length=1)
    account_id: UUID

    # Transfer linking
    transfer_id: Optional[UUID] = None
    transfer_account_id: Optional[UUID] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("occurred_at", "created_at", "updated_at")
    @classmethod
    def normalize_to_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def signed_amount(self) -> Decimal:
        return signed_amount(self.type, self.amount)

    @property
    def is_transfer(self) -> bool:
        return self.transfer_id is not None


class NewTransaction(BaseModel):
    """
    Data for recording an earning or expense.

    `occurred_at` defaults to the time of recording when left unset.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = ""
    type: Optional[TransactionType] = None
    amount: Decimal = Decimal("0")
    category: str = ""
    account_id: Optional[UUID] = None
    occurred_at: Optional[datetime] = None

    @field_validator("occurred_at")
    @classmethod
    def normalize_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v


class TransactionUpdate(BaseModel):
    """Field mask for editing a transaction. Only explicitly set fields apply."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = None
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = None
    category: Optional[str] = None
    account_id: Optional[UUID] = None
    occurred_at: Optional[datetime] = None

    @field_validator("occurred_at")
    @classmethod
    def normalize_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v

    def changes(self) -> dict:
        """Return only the fields that were explicitly set."""
        return {name: getattr(self, name) for name in self.model_fields_set}


# =============================================================================
# TRANSFERS
# =============================================================================

class TransferRequest(BaseModel):
    """Move `amount` from one account to another."""

    from_account_id: UUID
    to_account_id: UUID
    amount: Decimal
    occurred_at: Optional[datetime] = None
    note: Optional[str] = Field(
        default=None,
        description="Optional description for both legs"
    )

    @field_validator("occurred_at")
    @classmethod
    def normalize_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v


class TransferResult(BaseModel):
    """Outcome of a completed transfer."""

    transfer_id: UUID
    from_account_id: UUID
    to_account_id: UUID
    amount: Decimal
    from_balance: Decimal
    to_balance: Decimal
    debit_transaction_id: UUID
    credit_transaction_id: UUID


# =============================================================================
# QUERY RESULTS
# =============================================================================

class DailyTransactions(BaseModel):
    """Transactions that fall on one calendar day, newest first."""

    day: date
    transactions: list[Transaction] = Field(default_factory=list)

    @property
    def net_amount(self) -> Decimal:
        return sum((t.signed_amount for t in self.transactions), Decimal("0"))


class AccountSummary(BaseModel):
    """Per-account totals derived from transaction history."""

    account_id: UUID
    account_type: AccountType
    balance: Decimal
    total_earnings: Decimal
    total_expenses: Decimal
    transaction_count: int = Field(ge=0)


class BalanceDrift(BaseModel):
    """An account whose cached balance disagrees with its history."""

    account_id: UUID
    cached_balance: Decimal
    expected_balance: Decimal
    repaired: bool = False

    @property
    def difference(self) -> Decimal:
        return self.cached_balance - self.expected_balance
