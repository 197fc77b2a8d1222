"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Length limits
- Positive amounts, at most two decimal places

STAGE 2 - SEMANTIC VALIDATION:
- Balance limits
- Unknown categories
- Future-dated transactions
- Same-account transfers

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes values.
It reports them; the caller decides whether to raise.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Optional

from trove.config import LedgerSettings, get_settings
from trove.models.account import AccountUpdate, NewAccount, as_utc, utc_now
from trove.models.results import ValidationIssue, ValidationResult
from trove.models.transaction import (
    EARNING_CATEGORIES,
    EXPENSE_CATEGORIES,
    TRANSFER_CATEGORY,
    NewTransaction,
    TransactionType,
    TransactionUpdate,
    TransferRequest,
)


class ValidationError(Exception):
    """Input rejected before it reached storage."""

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = issues or []


def _error(field: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
    )


def _warning(field: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
    )


class LedgerValidator:
    """
    Validates account, transaction and transfer input.

    Every validate_* method returns a ValidationResult. Use
    raise_for_errors() to turn error-level issues into a ValidationError.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    # -------------------------------------------------------------------------
    # Field checks
    # -------------------------------------------------------------------------

    def _check_text(
        self,
        field: str,
        value: Optional[str],
        max_length: int,
        required: bool = True,
    ) -> list[ValidationIssue]:
        if value is None or value == "":
            if required:
                return [_error(field, "missing", f"{field} is required")]
            return []
        if len(value) > max_length:
            return [_error(
                field,
                "too_long",
                f"{field} must be at most {max_length} characters",
            )]
        return []

    def _check_amount(self, field: str, amount: Optional[Decimal]) -> list[ValidationIssue]:
        if amount is None:
            return [_error(field, "missing", f"{field} is required")]
        if not amount.is_finite():
            return [_error(field, "invalid_value", f"{field} must be a finite number")]
        if amount <= 0:
            return [_error(field, "invalid_value", f"{field} must be greater than zero")]
        return self._check_precision(field, amount)

    @staticmethod
    def _check_precision(field: str, amount: Decimal) -> list[ValidationIssue]:
        if amount.as_tuple().exponent < -2:
            return [_error(
                field,
                "invalid_precision",
                f"{field} can have at most 2 decimal places",
            )]
        return []

    def check_balance(self, field: str, balance: Decimal) -> list[ValidationIssue]:
        """Check a (resulting) balance against the configured limits."""
        issues = []
        max_balance = self._settings.max_balance
        if balance > max_balance:
            issues.append(_error(
                field,
                "exceeds_maximum",
                f"Balance cannot exceed {max_balance:,}",
            ))
        if balance < -max_balance:
            issues.append(_error(
                field,
                "exceeds_maximum",
                f"Balance cannot go below {-max_balance:,}",
            ))
        return issues

    def _check_category(
        self,
        category: str,
        tx_type: Optional[TransactionType],
    ) -> list[ValidationIssue]:
        if tx_type is None:
            return []
        known = EARNING_CATEGORIES if tx_type == TransactionType.EARNING else EXPENSE_CATEGORIES
        if category not in known and category != TRANSFER_CATEGORY:
            return [_warning(
                "category",
                "unknown_category",
                f"'{category}' is not a standard {tx_type.value.lower()} category",
            )]
        return []

    def _check_datetime(self, occurred_at) -> list[ValidationIssue]:
        if occurred_at is None:
            return []
        occurred_at = as_utc(occurred_at)
        tolerance = timedelta(days=self._settings.future_date_tolerance_days)
        if occurred_at > utc_now() + tolerance:
            return [_warning(
                "occurred_at",
                "future_date",
                f"Transaction date ({occurred_at.date()}) is in the future",
            )]
        return []

    @staticmethod
    def _result(
        subject: str,
        schema_issues: list[ValidationIssue],
        semantic_issues: list[ValidationIssue],
    ) -> ValidationResult:
        schema_valid = not any(i.severity == "error" for i in schema_issues)
        semantic_valid = schema_valid and not any(
            i.severity == "error" for i in semantic_issues
        )
        return ValidationResult(
            subject=subject,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            issues=schema_issues + semantic_issues,
        )

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def validate_new_account(self, account: NewAccount) -> ValidationResult:
        """Provider, account name and type are required; balance must be in range."""
        limit = self._settings.max_name_length
        schema = []
        schema += self._check_text("provider", account.provider, limit)
        schema += self._check_text("account_name", account.account_name, limit)
        schema += self._check_text("nickname", account.nickname, limit, required=False)
        if account.type is None:
            schema.append(_error("type", "missing", "type is required"))
        if not account.initial_balance.is_finite():
            schema.append(_error(
                "initial_balance", "invalid_value", "initial_balance must be a finite number"
            ))
        else:
            schema += self._check_precision("initial_balance", account.initial_balance)

        semantic = []
        if all(i.severity != "error" for i in schema):
            semantic += self.check_balance("initial_balance", account.initial_balance)
            if account.initial_balance < 0 and not self._settings.allow_negative_balance:
                semantic.append(_error(
                    "initial_balance",
                    "negative_balance",
                    "Initial balance cannot be negative",
                ))

        return self._result("account", schema, semantic)

    def validate_account_update(self, update: AccountUpdate) -> ValidationResult:
        """Supplied fields must be non-empty where required and within limits."""
        limit = self._settings.max_name_length
        changes = update.changes()
        schema = []
        if "provider" in changes:
            schema += self._check_text("provider", changes["provider"], limit)
        if "account_name" in changes:
            schema += self._check_text("account_name", changes["account_name"], limit)
        if "nickname" in changes:
            schema += self._check_text("nickname", changes["nickname"], limit, required=False)
        if "type" in changes and changes["type"] is None:
            schema.append(_error("type", "missing", "type cannot be cleared"))
        return self._result("account", schema, [])

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def validate_new_transaction(self, transaction: NewTransaction) -> ValidationResult:
        """Name, type, positive amount, category and account are required."""
        schema = []
        schema += self._check_text("name", transaction.name, self._settings.max_description_length)
        if transaction.type is None:
            schema.append(_error("type", "missing", "type is required"))
        schema += self._check_amount("amount", transaction.amount)
        schema += self._check_text("category", transaction.category, self._settings.max_name_length)
        if transaction.account_id is None:
            schema.append(_error("account_id", "missing", "account_id is required"))

        semantic = []
        if all(i.severity != "error" for i in schema):
            semantic += self._check_category(transaction.category, transaction.type)
            semantic += self._check_datetime(transaction.occurred_at)

        return self._result("transaction", schema, semantic)

    def validate_transaction_update(self, update: TransactionUpdate) -> ValidationResult:
        changes = update.changes()
        schema = []
        if "name" in changes:
            schema += self._check_text("name", changes["name"], self._settings.max_description_length)
        if "type" in changes and changes["type"] is None:
            schema.append(_error("type", "missing", "type cannot be cleared"))
        if "amount" in changes:
            schema += self._check_amount("amount", changes["amount"])
        if "category" in changes:
            schema += self._check_text("category", changes["category"], self._settings.max_name_length)
        if "account_id" in changes and changes["account_id"] is None:
            schema.append(_error("account_id", "missing", "account_id cannot be cleared"))
        if "occurred_at" in changes and changes["occurred_at"] is None:
            schema.append(_error("occurred_at", "missing", "occurred_at cannot be cleared"))

        semantic = []
        if all(i.severity != "error" for i in schema):
            semantic += self._check_datetime(changes.get("occurred_at"))

        return self._result("transaction", schema, semantic)

    # -------------------------------------------------------------------------
    # Transfers
    # -------------------------------------------------------------------------

    def validate_transfer(self, request: TransferRequest) -> ValidationResult:
        schema = []
        schema += self._check_amount("amount", request.amount)
        schema += self._check_text(
            "note", request.note, self._settings.max_description_length, required=False
        )

        semantic = []
        if all(i.severity != "error" for i in schema):
            if request.from_account_id == request.to_account_id:
                semantic.append(_error(
                    "to_account_id",
                    "same_account",
                    "Cannot transfer to the same account",
                ))
            semantic += self._check_datetime(request.occurred_at)

        return self._result("transfer", schema, semantic)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def raise_for_errors(result: ValidationResult) -> None:
        """Raise ValidationError if the result carries any error-level issue."""
        if result.has_errors:
            message = "; ".join(issue.message for issue in result.errors)
            raise ValidationError(message, result.errors)

    @staticmethod
    def get_user_friendly_summary(result: ValidationResult) -> str:
        """Summary suitable for a notification."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        if result.has_errors:
            lines.append("Please fix the following:")
            for issue in result.errors:
                lines.append(f"  - {issue.message}")
        if result.warnings:
            lines.append("Please double-check:")
            for warning in result.warnings:
                lines.append(f"  - {warning}")
        return "\n".join(lines)
