"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements a local SQLite file as the backend, but designed to be swappable.
"""

from trove.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BackupSignatureError,
    ConnectionError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)
from trove.services.storage.sqlite import (
    SQLiteAccountStorage,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteTransactionStorage,
    to_db_datetime,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "BackupSignatureError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # SQLite implementation
    "SQLiteAccountStorage",
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteTransactionStorage",
    "to_db_datetime",
]
