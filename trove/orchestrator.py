"""
Main Orchestrator for Trove

This module ties together all the components and defines the
user-facing flows for:
1. Accounts (add, edit, delete)
2. Transactions (record, edit, delete an earning or expense)
3. Transfers (move money between two accounts)

DESIGN DECISION: The flows are the boundary between the ledger and the UI.
- Expected failures (bad input, missing records, overdrafts) come back as
  an OperationResult with a message that can be shown as-is
- Storage failures are audited and reported with a generic message
- Nothing below this layer knows how messages are worded
"""

from typing import Optional
from uuid import UUID

import structlog

from trove.audit import AuditLogger, configure_logging
from trove.config import Settings, get_settings
from trove.ledger import AccountLedger, InsufficientBalanceError, TransferService
from trove.models.account import AccountUpdate, NewAccount
from trove.models.results import OperationResult
from trove.models.transaction import (
    NewTransaction,
    TransactionType,
    TransactionUpdate,
    TransferRequest,
)
from trove.queries import BalanceQueries
from trove.services.backup import BackupService
from trove.services.storage import (
    AccountStorageInterface,
    NotFoundError,
    SQLiteAccountStorage,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteTransactionStorage,
    StorageError,
)
from trove.validation import LedgerValidator, ValidationError


logger = structlog.get_logger(__name__)


def _rejected(error: Exception, message: Optional[str] = None) -> OperationResult:
    return OperationResult(
        success=False,
        message=message or str(error),
        error_type=type(error).__name__,
    )


class _Flow:
    """Shared storage-failure handling for the flows below."""

    def __init__(self, audit_logger: Optional[AuditLogger] = None):
        self._audit_logger = audit_logger

    async def _storage_failed(self, error: StorageError, message: str) -> OperationResult:
        logger.error("operation_failed", error=str(error), message=message)
        if self._audit_logger:
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
            )
        return _rejected(error, message)


class AccountFlow(_Flow):
    """Add, edit and delete accounts."""

    def __init__(
        self,
        accounts: AccountStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(audit_logger)
        self._accounts = accounts

    async def create_account(self, account: NewAccount) -> OperationResult:
        try:
            created = await self._accounts.create_account(account)
        except ValidationError as e:
            return _rejected(e)
        except StorageError as e:
            return await self._storage_failed(e, "Failed to add account.")

        if self._audit_logger:
            await self._audit_logger.log_account_created(
                created.id, created.provider, created.initial_balance
            )
        return OperationResult(
            success=True,
            message="Account added successfully!",
            data=created,
        )

    async def update_account(self, account_id: UUID, update: AccountUpdate) -> OperationResult:
        """Apply an edit. An update with no fields set is rejected."""
        changes = update.changes()
        if not changes:
            return OperationResult(success=False, message="Nothing to update.")

        try:
            updated = await self._accounts.update_account(account_id, update)
            if not updated:
                raise NotFoundError(f"Account {account_id} not found")
            account = await self._accounts.get_account(account_id)
        except (ValidationError, NotFoundError) as e:
            return _rejected(e)
        except StorageError as e:
            return await self._storage_failed(e, "Failed to update account.")

        if self._audit_logger:
            await self._audit_logger.log_account_updated(account_id, list(changes))
        return OperationResult(
            success=True,
            message="Account updated successfully!",
            data=account,
        )

    async def delete_account(self, account_id: UUID) -> OperationResult:
        """Delete an account along with all of its transactions."""
        try:
            deleted = await self._accounts.delete_account(account_id)
        except StorageError as e:
            return await self._storage_failed(e, "Failed to delete account.")

        if not deleted:
            return OperationResult(
                success=False,
                message="Account not found.",
                error_type=NotFoundError.__name__,
            )

        if self._audit_logger:
            await self._audit_logger.log_account_deleted(account_id)
        return OperationResult(success=True, message="Account deleted successfully!")


class TransactionFlow(_Flow):
    """Record, edit and delete earnings and expenses."""

    def __init__(
        self,
        ledger: AccountLedger,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(audit_logger)
        self._ledger = ledger
        self._validator = validator or LedgerValidator()

    async def record(self, new: NewTransaction) -> OperationResult:
        """
        Record an earning or expense.

        Non-blocking issues (unknown category, future date) are returned
        as warnings on a successful result.
        """
        label = "Earning" if new.type == TransactionType.EARNING else "Expense"
        warnings = self._validator.validate_new_transaction(new).warnings

        try:
            transaction = await self._ledger.create_transaction(new)
        except InsufficientBalanceError as e:
            return _rejected(e, "Insufficient account balance.")
        except (ValidationError, NotFoundError) as e:
            return _rejected(e)
        except StorageError as e:
            return await self._storage_failed(e, f"Failed to add {label.lower()}.")

        return OperationResult(
            success=True,
            message=f"{label} added successfully!",
            data=transaction,
            warnings=warnings,
        )

    async def update(self, transaction_id: UUID, update: TransactionUpdate) -> OperationResult:
        try:
            transaction = await self._ledger.update_transaction(transaction_id, update)
        except InsufficientBalanceError as e:
            return _rejected(e, "Insufficient account balance.")
        except (ValidationError, NotFoundError) as e:
            return _rejected(e)
        except StorageError as e:
            return await self._storage_failed(e, "Failed to update transaction.")

        return OperationResult(
            success=True,
            message="Transaction updated successfully!",
            data=transaction,
        )

    async def delete(self, transaction_id: UUID) -> OperationResult:
        try:
            deleted = await self._ledger.delete_transaction(transaction_id)
        except StorageError as e:
            return await self._storage_failed(e, "Failed to delete transaction.")

        if not deleted:
            return OperationResult(
                success=False,
                message="Transaction not found.",
                error_type=NotFoundError.__name__,
            )
        return OperationResult(success=True, message="Transaction deleted successfully!")


class TransferFlow(_Flow):
    """Move money between two accounts."""

    def __init__(
        self,
        transfers: TransferService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(audit_logger)
        self._transfers = transfers

    async def transfer(self, request: TransferRequest) -> OperationResult:
        try:
            result = await self._transfers.transfer(request)
        except InsufficientBalanceError as e:
            return _rejected(e, "Insufficient balance in source account.")
        except (ValidationError, NotFoundError) as e:
            return _rejected(e)
        except StorageError as e:
            return await self._storage_failed(e, "Failed to transfer money.")

        return OperationResult(
            success=True,
            message="Transfer completed successfully!",
            data=result,
        )


class AppComponents:
    """
    Everything the UI needs, wired to one database.

    Usage:
        components = create_app_components()
        await components.init()
        result = await components.account_flow.create_account(...)
        await components.close()
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.database = SQLiteDatabase(settings.database)
        self.validator = LedgerValidator(settings.ledger)

        self.account_storage = SQLiteAccountStorage(self.database, self.validator)
        self.transaction_storage = SQLiteTransactionStorage(self.database)
        self.audit_storage = SQLiteAuditStorage(self.database)
        self.audit_logger = AuditLogger(self.audit_storage)

        self.ledger = AccountLedger(
            self.database,
            self.account_storage,
            self.transaction_storage,
            validator=self.validator,
            audit_logger=self.audit_logger,
            settings=settings.ledger,
        )
        self.transfers = TransferService(
            self.database,
            self.account_storage,
            self.transaction_storage,
            validator=self.validator,
            audit_logger=self.audit_logger,
            settings=settings.ledger,
        )
        self.queries = BalanceQueries(self.account_storage, self.transaction_storage)
        self.backups = BackupService(self.database, settings, self.audit_logger)

        self.account_flow = AccountFlow(self.account_storage, self.audit_logger)
        self.transaction_flow = TransactionFlow(self.ledger, self.validator, self.audit_logger)
        self.transfer_flow = TransferFlow(self.transfers, self.audit_logger)

    async def init(self) -> None:
        """Configure logging and open the database."""
        configure_logging(self.settings.app.log_level)
        await self.database.init()

    async def close(self) -> None:
        await self.database.close()

    async def __aenter__(self) -> "AppComponents":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def create_app_components(settings: Optional[Settings] = None) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use. Defaults to get_settings(), which reads
                 the environment and .env.

    Returns:
        AppComponents; call init() before use
    """
    return AppComponents(settings or get_settings())
