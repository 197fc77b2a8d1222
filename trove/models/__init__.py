"""
Data Models Package

This package contains all Pydantic models used in Trove.
All data flowing in and out of the store must conform to these schemas.
"""

from trove.models.account import (
    Account,
    AccountType,
    AccountUpdate,
    NewAccount,
    as_utc,
    utc_now,
)
from trove.models.transaction import (
    EARNING_CATEGORIES,
    EXPENSE_CATEGORIES,
    TRANSFER_CATEGORY,
    AccountSummary,
    BalanceDrift,
    DailyTransactions,
    NewTransaction,
    Transaction,
    TransactionType,
    TransactionUpdate,
    TransferRequest,
    TransferResult,
    signed_amount,
)
from trove.models.results import (
    OperationResult,
    ValidationIssue,
    ValidationResult,
)
from trove.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Account models
    "Account",
    "AccountType",
    "AccountUpdate",
    "NewAccount",
    "as_utc",
    "utc_now",
    # Transaction models
    "EARNING_CATEGORIES",
    "EXPENSE_CATEGORIES",
    "TRANSFER_CATEGORY",
    "AccountSummary",
    "BalanceDrift",
    "DailyTransactions",
    "NewTransaction",
    "Transaction",
    "TransactionType",
    "TransactionUpdate",
    "TransferRequest",
    "TransferResult",
    "signed_amount",
    # Results
    "OperationResult",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
