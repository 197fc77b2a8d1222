"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the ledger decoupled from the SQLite backend
2. Swap in another local store (e.g. an object-mapped reactive database)
3. Keep the row <-> model mapping in one place per backend

The interface is intentionally low level. Transaction methods here are
raw row operations with no balance side effects; keeping balances in sync
is the job of trove.ledger.AccountLedger.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from trove.models.account import Account, AccountType, AccountUpdate, NewAccount
from trove.models.audit import AuditEvent
from trove.models.transaction import Transaction, TransactionType, TransactionUpdate


class AccountStorageInterface(ABC):
    """
    Abstract interface for account storage operations.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def create_account(self, account: NewAccount) -> Account:
        """
        Create an account with a generated id and timestamps.

        The new account's balance equals its initial balance.

        Raises:
            ValidationError: If provider, account_name or type is missing,
                or the initial balance is out of range
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[Account]:
        """Return the account, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """All accounts, newest-created first."""
        pass

    @abstractmethod
    async def list_accounts_by_type(self, account_type: AccountType) -> list[Account]:
        """Accounts of one type, newest-created first."""
        pass

    @abstractmethod
    async def search_accounts(self, query: str) -> list[Account]:
        """Accounts whose provider, name or nickname contains `query`."""
        pass

    @abstractmethod
    async def update_account(self, account_id: UUID, update: AccountUpdate) -> bool:
        """
        Apply only the fields set on `update` and bump updated_at.

        Returns:
            False if the account does not exist or no fields were supplied

        Raises:
            ValidationError: If a supplied value is invalid
        """
        pass

    @abstractmethod
    async def delete_account(self, account_id: UUID) -> bool:
        """
        Delete an account and, by cascade, all of its transactions.

        Returns:
            False if the account does not exist
        """
        pass

    @abstractmethod
    async def set_balance(self, account_id: UUID, balance: Decimal) -> bool:
        """Overwrite the cached balance. Returns False if the account does not exist."""
        pass

    @abstractmethod
    async def get_total_balance(self) -> Decimal:
        """Sum of the cached balances of all accounts."""
        pass

    @abstractmethod
    async def get_total_balance_by_type(self, account_type: AccountType) -> Decimal:
        """Sum of the cached balances of accounts of one type."""
        pass

    @abstractmethod
    async def count_accounts(self) -> int:
        pass


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction row storage.

    All list methods return transactions newest first (by occurred_at).
    """

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a transaction row as-is.

        Raises:
            StorageError: If the write fails (e.g. unknown account_id)
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        pass

    @abstractmethod
    async def list_transactions_by_type(self, tx_type: TransactionType) -> list[Transaction]:
        pass

    @abstractmethod
    async def list_transactions_by_account(self, account_id: UUID) -> list[Transaction]:
        pass

    @abstractmethod
    async def list_transactions_by_date_range(
        self,
        start: datetime,
        end: datetime,
    ) -> list[Transaction]:
        """Transactions with start <= occurred_at <= end."""
        pass

    @abstractmethod
    async def list_transactions_by_transfer(self, transfer_id: UUID) -> list[Transaction]:
        """Both legs of a transfer."""
        pass

    @abstractmethod
    async def search_transactions(self, query: str) -> list[Transaction]:
        """Transactions whose name contains `query`."""
        pass

    @abstractmethod
    async def update_transaction(self, transaction_id: UUID, update: TransactionUpdate) -> bool:
        """
        Apply only the fields set on `update` and bump updated_at.

        Returns:
            False if the transaction does not exist or no fields were supplied
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """Delete one row. Returns False if it does not exist."""
        pass

    @abstractmethod
    async def sum_signed_amounts(self, account_id: UUID) -> Decimal:
        """Sum of +amount for earnings and -amount for expenses of one account."""
        pass

    @abstractmethod
    async def total_by_type_for_account(
        self,
        account_id: UUID,
        tx_type: TransactionType,
    ) -> Decimal:
        pass

    @abstractmethod
    async def count_by_account(self, account_id: UUID) -> int:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Events for one entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """The database is not open or could not be opened."""
    pass


class BackupSignatureError(StorageError):
    """A backup file was not created by this application or is corrupted."""
    pass
