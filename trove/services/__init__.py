"""Services package."""

from trove.services.backup import BackupService
from trove.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    BackupSignatureError,
    ConnectionError,
    NotFoundError,
    SQLiteAccountStorage,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteTransactionStorage,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Backup
    "BackupService",
    # Storage services
    "AccountStorageInterface",
    "AuditStorageInterface",
    "BackupSignatureError",
    "ConnectionError",
    "NotFoundError",
    "SQLiteAccountStorage",
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteTransactionStorage",
    "StorageError",
    "TransactionStorageInterface",
]
