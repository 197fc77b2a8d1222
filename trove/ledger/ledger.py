"""
Account Ledger

DESIGN DECISION: The ledger is the only component that writes balances.
For every account it maintains:

    balance == initial_balance + sum(+amount for EARNING, -amount for EXPENSE)

Every operation that touches a transaction row also writes the affected
balances, and both happen inside ONE database transaction. Either the row
and the balance change together, or neither changes.

Editing or deleting a transaction first reverses its old effect, then
applies the new one, so the invariant holds after every call.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from trove.audit import AuditLogger
from trove.config import LedgerSettings, get_settings
from trove.models.account import Account, utc_now
from trove.models.transaction import (
    BalanceDrift,
    NewTransaction,
    Transaction,
    TransactionUpdate,
    signed_amount,
)
from trove.models.results import ValidationResult
from trove.services.storage import (
    AccountStorageInterface,
    NotFoundError,
    SQLiteDatabase,
    TransactionStorageInterface,
)
from trove.validation import LedgerValidator, ValidationError


logger = structlog.get_logger(__name__)


class InsufficientBalanceError(Exception):
    """An expense or transfer would drive a balance below zero."""

    def __init__(self, account_id: UUID, balance: Decimal, amount: Decimal):
        self.account_id = account_id
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"Insufficient balance: account has {balance}, needs {amount}"
        )


class AccountLedger:
    """
    Records, edits and deletes transactions while keeping balances in sync.

    Usage:
        ledger = AccountLedger(db, accounts, transactions)
        tx = await ledger.create_transaction(NewTransaction(
            name="Groceries",
            type=TransactionType.EXPENSE,
            amount=Decimal("200"),
            category="Food",
            account_id=account.id,
        ))
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        accounts: AccountStorageInterface,
        transactions: TransactionStorageInterface,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._db = database
        self._accounts = accounts
        self._transactions = transactions
        self._settings = settings or get_settings().ledger
        self._validator = validator or LedgerValidator(self._settings)
        self._audit_logger = audit_logger

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _require_account(self, account_id: UUID) -> Account:
        account = await self._accounts.get_account(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    async def _require_transaction(self, transaction_id: UUID) -> Transaction:
        transaction = await self._transactions.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def _reject_if_invalid(self, result: ValidationResult) -> None:
        if not result.has_errors:
            return
        if self._audit_logger:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.errors
            ]
            await self._audit_logger.log_validation_failed(result.subject, issues)
        self._validator.raise_for_errors(result)

    def _check_new_balance(
        self,
        account_id: UUID,
        current: Decimal,
        new: Decimal,
    ) -> None:
        """
        Reject a balance change that overdraws the account or exceeds the limit.

        A balance that is already negative may still be moved towards zero.
        """
        if new < 0 and new < current and not self._settings.allow_negative_balance:
            raise InsufficientBalanceError(account_id, current, current - new)
        issues = self._validator.check_balance("balance", new)
        if issues:
            raise ValidationError("; ".join(i.message for i in issues), issues)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def create_transaction(self, new: NewTransaction) -> Transaction:
        """
        Record an earning or expense and update the account balance.

        Raises:
            ValidationError: Missing or invalid fields, or the balance
                would exceed the configured maximum
            NotFoundError: The account does not exist
            InsufficientBalanceError: An expense would overdraw the account
        """
        await self._reject_if_invalid(self._validator.validate_new_transaction(new))

        now = utc_now()
        transaction = Transaction(
            name=new.name,
            type=new.type,
            amount=new.amount,
            occurred_at=new.occurred_at or now,
            category=new.category,
            account_id=new.account_id,
            created_at=now,
            updated_at=now,
        )

        async with self._db.transaction():
            account = await self._require_account(transaction.account_id)
            new_balance = account.balance + transaction.signed_amount
            self._check_new_balance(account.id, account.balance, new_balance)

            await self._transactions.insert_transaction(transaction)
            await self._accounts.set_balance(account.id, new_balance)

        logger.info(
            "transaction_recorded",
            transaction_id=str(transaction.id),
            account_id=str(account.id),
            balance=str(new_balance),
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_recorded(
                transaction_id=transaction.id,
                account_id=account.id,
                tx_type=transaction.type.value,
                amount=transaction.amount,
                new_balance=new_balance,
            )
        return transaction

    async def update_transaction(
        self,
        transaction_id: UUID,
        update: TransactionUpdate,
    ) -> Transaction:
        """
        Edit a transaction, moving its effect between balances as needed.

        The old amount is taken off the old account and the new amount is
        applied to the (possibly different) new account.

        Raises:
            ValidationError: Invalid fields, or the transaction is one leg
                of a transfer
            NotFoundError: The transaction or the new account does not exist
            InsufficientBalanceError: The edit would overdraw an account
        """
        await self._reject_if_invalid(self._validator.validate_transaction_update(update))
        changes = update.changes()

        async with self._db.transaction():
            old = await self._require_transaction(transaction_id)
            if not changes:
                return old
            if old.is_transfer:
                raise ValidationError(
                    "Transfer transactions cannot be edited; delete the transfer instead"
                )

            new_account_id = changes.get("account_id", old.account_id)
            new_type = changes.get("type", old.type)
            new_amount = changes.get("amount", old.amount)

            old_account = await self._require_account(old.account_id)
            current = {old_account.id: old_account.balance}
            if new_account_id not in current:
                new_account = await self._require_account(new_account_id)
                current[new_account.id] = new_account.balance

            balances = dict(current)
            balances[old.account_id] -= old.signed_amount
            balances[new_account_id] += signed_amount(new_type, new_amount)

            for account_id, balance in balances.items():
                self._check_new_balance(account_id, current[account_id], balance)

            await self._transactions.update_transaction(transaction_id, update)
            for account_id, balance in balances.items():
                if balance != current[account_id]:
                    await self._accounts.set_balance(account_id, balance)

            updated = await self._require_transaction(transaction_id)

        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                transaction_id, list(changes), balances
            )
        return updated

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """
        Delete a transaction and reverse its effect on the balance.

        Deleting either leg of a transfer deletes both legs and restores
        both accounts. Deletion is never blocked by balance limits.

        Returns:
            False if the transaction does not exist
        """
        async with self._db.transaction():
            transaction = await self._transactions.get_transaction(transaction_id)
            if transaction is None:
                return False

            if transaction.is_transfer:
                legs = await self._transactions.list_transactions_by_transfer(
                    transaction.transfer_id
                )
            else:
                legs = [transaction]

            balances: dict[UUID, Decimal] = {}
            for leg in legs:
                if leg.account_id not in balances:
                    account = await self._require_account(leg.account_id)
                    balances[account.id] = account.balance
                balances[leg.account_id] -= leg.signed_amount

            for leg in legs:
                await self._transactions.delete_transaction(leg.id)
            for account_id, balance in balances.items():
                await self._accounts.set_balance(account_id, balance)

        logger.info(
            "transaction_deleted",
            transaction_id=str(transaction_id),
            legs=len(legs),
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(transaction_id, balances)
        return True

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def expected_balance(self, account: Account) -> Decimal:
        """initial_balance plus the signed sum of the account's history."""
        return account.initial_balance + await self._transactions.sum_signed_amounts(account.id)

    async def recompute_balance(self, account_id: UUID) -> Decimal:
        """
        Rebuild an account's cached balance from its history and store it.

        Raises:
            NotFoundError: The account does not exist
        """
        async with self._db.transaction():
            account = await self._require_account(account_id)
            expected = await self.expected_balance(account)
            if expected != account.balance:
                await self._accounts.set_balance(account_id, expected)

        if expected != account.balance and self._audit_logger:
            await self._audit_logger.log_balance_recomputed(
                account_id, account.balance, expected
            )
        return expected

    async def reconcile(self, repair: bool = False) -> list[BalanceDrift]:
        """
        Compare every cached balance with its history.

        Args:
            repair: Overwrite drifted balances with the expected value

        Returns:
            One BalanceDrift per account that disagreed
        """
        drifts = []
        async with self._db.transaction():
            for account in await self._accounts.list_accounts():
                expected = await self.expected_balance(account)
                if expected == account.balance:
                    continue
                if repair:
                    await self._accounts.set_balance(account.id, expected)
                drifts.append(BalanceDrift(
                    account_id=account.id,
                    cached_balance=account.balance,
                    expected_balance=expected,
                    repaired=repair,
                ))

        for drift in drifts:
            logger.warning(
                "balance_drift",
                account_id=str(drift.account_id),
                cached=str(drift.cached_balance),
                expected=str(drift.expected_balance),
                repaired=drift.repaired,
            )
            if self._audit_logger:
                await self._audit_logger.log_balance_drift(
                    drift.account_id, drift.cached_balance, drift.expected_balance
                )
        return drifts
