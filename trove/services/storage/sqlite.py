"""
SQLite Storage Implementation

DESIGN DECISION: A single local SQLite file is the record store because:
1. The app is single-user and single-process
2. Foreign keys give us the account -> transactions cascade for free
3. The whole store can be backed up and restored as one file

Amounts and balances are stored as TEXT and summed as Decimal in Python,
so no precision is lost to REAL columns.

The connection runs in autocommit mode. Writes are grouped with
SQLiteDatabase.transaction(), which issues BEGIN/COMMIT/ROLLBACK itself
and lets the ledger put several statements in one atomic unit.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncIterator, Optional
from uuid import UUID, uuid4

import aiosqlite
import structlog

from trove.config import DatabaseSettings, get_settings
from trove.models.account import (
    Account,
    AccountType,
    AccountUpdate,
    NewAccount,
    as_utc,
    utc_now,
)
from trove.models.audit import AuditEvent, AuditEventType, AuditSeverity
from trove.models.transaction import (
    Transaction,
    TransactionType,
    TransactionUpdate,
    signed_amount,
)
from trove.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    StorageError,
    TransactionStorageInterface,
)
from trove.validation import LedgerValidator


logger = structlog.get_logger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS _metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
    id              TEXT PRIMARY KEY,
    provider        TEXT NOT NULL,
    nickname        TEXT,
    account_name    TEXT NOT NULL,
    type            TEXT NOT NULL CHECK(type IN ('SAVINGS', 'CHECKING', 'E-WALLET', 'CASH')),
    initial_balance TEXT NOT NULL DEFAULT '0',
    balance         TEXT NOT NULL DEFAULT '0',
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS transactions (
    id                  TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    type                TEXT NOT NULL CHECK(type IN ('EXPENSE', 'EARNING')),
    amount              TEXT NOT NULL,
    datetime            TEXT NOT NULL,
    category            TEXT NOT NULL,
    account_id          TEXT NOT NULL,
    transfer_id         TEXT,
    transfer_account_id TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS audit_log (
    event_id      TEXT PRIMARY KEY,
    timestamp     TEXT NOT NULL,
    event_type    TEXT NOT NULL,
    severity      TEXT NOT NULL,
    entity_type   TEXT,
    entity_id     TEXT,
    description   TEXT NOT NULL,
    details_json  TEXT,
    error_message TEXT
);

CREATE INDEX IF NOT EXISTS idx_accounts_type ON accounts(type);
CREATE INDEX IF NOT EXISTS idx_accounts_provider ON accounts(provider);
CREATE INDEX IF NOT EXISTS idx_transactions_account_id ON transactions(account_id);
CREATE INDEX IF NOT EXISTS idx_transactions_type ON transactions(type);
CREATE INDEX IF NOT EXISTS idx_transactions_datetime ON transactions(datetime);
CREATE INDEX IF NOT EXISTS idx_transactions_transfer_id ON transactions(transfer_id);
CREATE INDEX IF NOT EXISTS idx_audit_log_entity ON audit_log(entity_type, entity_id);
"""

APP_SIGNATURE_KEY = "app_signature"


def to_db_datetime(value: datetime) -> str:
    """
    Serialize a datetime for storage.

    Naive datetimes are taken to be UTC. Everything is stored as UTC with
    microseconds so that string order equals chronological order.
    """
    return as_utc(value).isoformat(timespec="microseconds")


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SQLiteDatabase:
    """
    Owns the SQLite connection and the schema.

    There is no module-level instance: construct one, call init(), pass it
    to the storages that need it, and close() it when done.

    Usage:
        db = SQLiteDatabase(settings.database)
        await db.init()

        async with db.transaction() as conn:
            await conn.execute("UPDATE ...")
            await conn.execute("INSERT ...")

        await db.close()
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self._settings = settings or get_settings().database
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._tx_owner: Optional[asyncio.Task] = None

    @property
    def path(self) -> Path:
        return self._settings.path

    @property
    def app_signature(self) -> str:
        return self._settings.app_signature

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def init(self) -> None:
        """Open the database file, create tables and write the app signature."""
        if self._conn is not None:
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(str(self.path), isolation_level=None)
        except (OSError, aiosqlite.Error) as e:
            raise ConnectionError(f"Failed to open database at {self.path}: {e}") from e

        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON")
            await conn.execute(f"PRAGMA busy_timeout = {self._settings.busy_timeout_ms}")
            await conn.executescript(SCHEMA)
            await conn.execute(
                "INSERT OR IGNORE INTO _metadata (key, value) VALUES (?, ?)",
                (APP_SIGNATURE_KEY, self.app_signature),
            )
        except aiosqlite.Error as e:
            await conn.close()
            raise ConnectionError(f"Failed to initialize database at {self.path}: {e}") from e

        self._conn = conn
        logger.info("database_initialized", path=str(self.path))

    async def close(self) -> None:
        """Close the connection. Safe to call when already closed."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed", path=str(self.path))

    async def reset(self) -> None:
        """Close the connection, delete the database file and re-initialize."""
        await self.close()
        try:
            for suffix in ("", "-wal", "-shm", "-journal"):
                Path(f"{self.path}{suffix}").unlink(missing_ok=True)
        except OSError as e:
            logger.error("database_reset_failed", path=str(self.path), error=str(e))
            await self.init()
            raise StorageError(f"Failed to delete database file: {e}") from e

        await self.init()
        logger.warning("database_reset", path=str(self.path))

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    async def get_app_signature(self) -> Optional[str]:
        row = await self.fetchone(
            "SELECT value FROM _metadata WHERE key = ?",
            (APP_SIGNATURE_KEY,),
        )
        return row["value"] if row else None

    async def verify_app_signature(self) -> bool:
        """True if the open database carries this application's signature."""
        try:
            return await self.get_app_signature() == self.app_signature
        except StorageError as e:
            logger.error("signature_verification_failed", error=str(e))
            return False

    async def vacuum_into(self, target: Path) -> None:
        """Write a compacted copy of the live database to `target`."""
        conn = self._require_connection()
        async with self._lock:
            try:
                await conn.execute("VACUUM INTO ?", (str(target),))
            except aiosqlite.Error as e:
                raise StorageError(f"Failed to write backup to {target}: {e}") from e

    # -------------------------------------------------------------------------
    # Statement helpers
    # -------------------------------------------------------------------------

    def _require_connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise ConnectionError("Database not initialized")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run a group of statements atomically.

        Commits on success, rolls back on any exception. A nested
        transaction() in the same task joins the outer one, so storage
        methods can be composed by the ledger. Transactions from
        different tasks are serialized.
        """
        conn = self._require_connection()
        task = asyncio.current_task()

        if task is not None and self._tx_owner is task:
            yield conn
            return

        async with self._lock:
            self._tx_owner = task
            try:
                try:
                    await conn.execute("BEGIN IMMEDIATE")
                except aiosqlite.Error as e:
                    raise StorageError(f"Failed to begin transaction: {e}") from e

                try:
                    yield conn
                except BaseException:
                    await self._rollback(conn)
                    raise

                try:
                    await conn.execute("COMMIT")
                except aiosqlite.Error as e:
                    await self._rollback(conn)
                    raise StorageError(f"Failed to commit transaction: {e}") from e
            finally:
                self._tx_owner = None

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.execute("ROLLBACK")
        except aiosqlite.Error as e:
            # SQLite may already have rolled back on its own
            logger.warning("rollback_failed", error=str(e))

    async def execute(self, sql: str, parameters: tuple[Any, ...] = ()) -> int:
        """Execute one write statement atomically and return the affected row count."""
        try:
            async with self.transaction() as conn:
                cursor = await conn.execute(sql, parameters)
                return cursor.rowcount
        except aiosqlite.Error as e:
            raise StorageError(f"Write failed: {e}") from e

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] = (),
    ) -> Optional[aiosqlite.Row]:
        conn = self._require_connection()
        try:
            cursor = await conn.execute(sql, parameters)
            return await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"Read failed: {e}") from e

    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] = (),
    ) -> list[aiosqlite.Row]:
        conn = self._require_connection()
        try:
            cursor = await conn.execute(sql, parameters)
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StorageError(f"Read failed: {e}") from e


class SQLiteAccountStorage(AccountStorageInterface):
    """
    SQLite implementation of account storage.

    One account per row in the `accounts` table.
    """

    # AccountUpdate field -> column
    UPDATABLE_COLUMNS = {
        "provider": "provider",
        "nickname": "nickname",
        "account_name": "account_name",
        "type": "type",
    }

    def __init__(
        self,
        database: SQLiteDatabase,
        validator: Optional[LedgerValidator] = None,
    ):
        self._db = database
        self._validator = validator or LedgerValidator()

    @staticmethod
    def _row_to_account(row: aiosqlite.Row) -> Account:
        return Account(
            id=UUID(row["id"]),
            provider=row["provider"],
            nickname=row["nickname"],
            account_name=row["account_name"],
            type=AccountType(row["type"]),
            initial_balance=Decimal(row["initial_balance"]),
            balance=Decimal(row["balance"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def create_account(self, account: NewAccount) -> Account:
        self._validator.raise_for_errors(self._validator.validate_new_account(account))

        now = utc_now()
        created = Account(
            id=uuid4(),
            provider=account.provider,
            nickname=account.nickname or None,
            account_name=account.account_name,
            type=account.type,
            initial_balance=account.initial_balance,
            balance=account.initial_balance,
            created_at=now,
            updated_at=now,
        )
        await self._db.execute(
            """
            INSERT INTO accounts
                (id, provider, nickname, account_name, type,
                 initial_balance, balance, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(created.id),
                created.provider,
                created.nickname,
                created.account_name,
                created.type.value,
                str(created.initial_balance),
                str(created.balance),
                to_db_datetime(created.created_at),
                to_db_datetime(created.updated_at),
            ),
        )
        logger.info("account_created", account_id=str(created.id))
        return created

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        row = await self._db.fetchone(
            "SELECT * FROM accounts WHERE id = ?",
            (str(account_id),),
        )
        return self._row_to_account(row) if row else None

    async def list_accounts(self) -> list[Account]:
        rows = await self._db.fetchall(
            "SELECT * FROM accounts ORDER BY created_at DESC, rowid DESC"
        )
        return [self._row_to_account(row) for row in rows]

    async def list_accounts_by_type(self, account_type: AccountType) -> list[Account]:
        rows = await self._db.fetchall(
            "SELECT * FROM accounts WHERE type = ? ORDER BY created_at DESC, rowid DESC",
            (account_type.value,),
        )
        return [self._row_to_account(row) for row in rows]

    async def search_accounts(self, query: str) -> list[Account]:
        pattern = _like_pattern(query)
        rows = await self._db.fetchall(
            """
            SELECT * FROM accounts
            WHERE provider LIKE ? ESCAPE '\\'
               OR account_name LIKE ? ESCAPE '\\'
               OR nickname LIKE ? ESCAPE '\\'
            ORDER BY account_name
            """,
            (pattern, pattern, pattern),
        )
        return [self._row_to_account(row) for row in rows]

    async def update_account(self, account_id: UUID, update: AccountUpdate) -> bool:
        changes = update.changes()
        if not changes:
            return False

        self._validator.raise_for_errors(self._validator.validate_account_update(update))

        assignments = []
        values: list[Any] = []
        for field, column in self.UPDATABLE_COLUMNS.items():
            if field not in changes:
                continue
            value = changes[field]
            if isinstance(value, AccountType):
                value = value.value
            if field == "nickname" and value == "":
                value = None
            assignments.append(f"{column} = ?")
            values.append(value)

        assignments.append("updated_at = ?")
        values.append(to_db_datetime(utc_now()))
        values.append(str(account_id))

        count = await self._db.execute(
            f"UPDATE accounts SET {', '.join(assignments)} WHERE id = ?",
            tuple(values),
        )
        return count > 0

    async def delete_account(self, account_id: UUID) -> bool:
        count = await self._db.execute(
            "DELETE FROM accounts WHERE id = ?",
            (str(account_id),),
        )
        if count:
            logger.info("account_deleted", account_id=str(account_id))
        return count > 0

    async def set_balance(self, account_id: UUID, balance: Decimal) -> bool:
        count = await self._db.execute(
            "UPDATE accounts SET balance = ?, updated_at = ? WHERE id = ?",
            (str(balance), to_db_datetime(utc_now()), str(account_id)),
        )
        return count > 0

    async def get_total_balance(self) -> Decimal:
        rows = await self._db.fetchall("SELECT balance FROM accounts")
        return sum((Decimal(row["balance"]) for row in rows), Decimal("0"))

    async def get_total_balance_by_type(self, account_type: AccountType) -> Decimal:
        rows = await self._db.fetchall(
            "SELECT balance FROM accounts WHERE type = ?",
            (account_type.value,),
        )
        return sum((Decimal(row["balance"]) for row in rows), Decimal("0"))

    async def count_accounts(self) -> int:
        row = await self._db.fetchone("SELECT COUNT(*) AS n FROM accounts")
        return row["n"] if row else 0


class SQLiteTransactionStorage(TransactionStorageInterface):
    """
    SQLite implementation of transaction row storage.

    Rows are written as-is; balance bookkeeping happens in the ledger.
    """

    # TransactionUpdate field -> column
    UPDATABLE_COLUMNS = {
        "name": "name",
        "type": "type",
        "amount": "amount",
        "category": "category",
        "account_id": "account_id",
        "occurred_at": "datetime",
    }

    ORDER = "ORDER BY datetime DESC, rowid DESC"

    def __init__(self, database: SQLiteDatabase):
        self._db = database

    @staticmethod
    def _row_to_transaction(row: aiosqlite.Row) -> Transaction:
        return Transaction(
            id=UUID(row["id"]),
            name=row["name"],
            type=TransactionType(row["type"]),
            amount=Decimal(row["amount"]),
            occurred_at=datetime.fromisoformat(row["datetime"]),
            category=row["category"],
            account_id=UUID(row["account_id"]),
            transfer_id=UUID(row["transfer_id"]) if row["transfer_id"] else None,
            transfer_account_id=(
                UUID(row["transfer_account_id"]) if row["transfer_account_id"] else None
            ),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _to_column_value(field: str, value: Any) -> Any:
        if isinstance(value, TransactionType):
            return value.value
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, UUID):
            return str(value)
        if field == "occurred_at":
            return to_db_datetime(value)
        return value

    async def _select(self, where: str = "", parameters: tuple[Any, ...] = ()) -> list[Transaction]:
        sql = f"SELECT * FROM transactions {where} {self.ORDER}"
        rows = await self._db.fetchall(sql, parameters)
        return [self._row_to_transaction(row) for row in rows]

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        await self._db.execute(
            """
            INSERT INTO transactions
                (id, name, type, amount, datetime, category, account_id,
                 transfer_id, transfer_account_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(transaction.id),
                transaction.name,
                transaction.type.value,
                str(transaction.amount),
                to_db_datetime(transaction.occurred_at),
                transaction.category,
                str(transaction.account_id),
                str(transaction.transfer_id) if transaction.transfer_id else None,
                str(transaction.transfer_account_id) if transaction.transfer_account_id else None,
                to_db_datetime(transaction.created_at),
                to_db_datetime(transaction.updated_at),
            ),
        )
        return transaction

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        row = await self._db.fetchone(
            "SELECT * FROM transactions WHERE id = ?",
            (str(transaction_id),),
        )
        return self._row_to_transaction(row) if row else None

    async def list_transactions(self) -> list[Transaction]:
        return await self._select()

    async def list_transactions_by_type(self, tx_type: TransactionType) -> list[Transaction]:
        return await self._select("WHERE type = ?", (tx_type.value,))

    async def list_transactions_by_account(self, account_id: UUID) -> list[Transaction]:
        return await self._select("WHERE account_id = ?", (str(account_id),))

    async def list_transactions_by_date_range(
        self,
        start: datetime,
        end: datetime,
    ) -> list[Transaction]:
        return await self._select(
            "WHERE datetime BETWEEN ? AND ?",
            (to_db_datetime(start), to_db_datetime(end)),
        )

    async def list_transactions_by_transfer(self, transfer_id: UUID) -> list[Transaction]:
        return await self._select("WHERE transfer_id = ?", (str(transfer_id),))

    async def search_transactions(self, query: str) -> list[Transaction]:
        return await self._select("WHERE name LIKE ? ESCAPE '\\'", (_like_pattern(query),))

    async def update_transaction(self, transaction_id: UUID, update: TransactionUpdate) -> bool:
        changes = update.changes()
        if not changes:
            return False

        assignments = []
        values: list[Any] = []
        for field, column in self.UPDATABLE_COLUMNS.items():
            if field in changes:
                assignments.append(f"{column} = ?")
                values.append(self._to_column_value(field, changes[field]))

        assignments.append("updated_at = ?")
        values.append(to_db_datetime(utc_now()))
        values.append(str(transaction_id))

        count = await self._db.execute(
            f"UPDATE transactions SET {', '.join(assignments)} WHERE id = ?",
            tuple(values),
        )
        return count > 0

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        count = await self._db.execute(
            "DELETE FROM transactions WHERE id = ?",
            (str(transaction_id),),
        )
        return count > 0

    async def sum_signed_amounts(self, account_id: UUID) -> Decimal:
        rows = await self._db.fetchall(
            "SELECT type, amount FROM transactions WHERE account_id = ?",
            (str(account_id),),
        )
        return sum(
            (signed_amount(TransactionType(row["type"]), Decimal(row["amount"])) for row in rows),
            Decimal("0"),
        )

    async def total_by_type_for_account(
        self,
        account_id: UUID,
        tx_type: TransactionType,
    ) -> Decimal:
        rows = await self._db.fetchall(
            "SELECT amount FROM transactions WHERE account_id = ? AND type = ?",
            (str(account_id), tx_type.value),
        )
        return sum((Decimal(row["amount"]) for row in rows), Decimal("0"))

    async def count_by_account(self, account_id: UUID) -> int:
        row = await self._db.fetchone(
            "SELECT COUNT(*) AS n FROM transactions WHERE account_id = ?",
            (str(account_id),),
        )
        return row["n"] if row else 0


class SQLiteAuditStorage(AuditStorageInterface):
    """
    SQLite implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, database: SQLiteDatabase):
        self._db = database

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row["event_id"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            event_type=AuditEventType(row["event_type"]),
            severity=AuditSeverity(row["severity"]),
            entity_type=row["entity_type"],
            entity_id=UUID(row["entity_id"]) if row["entity_id"] else None,
            description=row["description"],
            details=json.loads(row["details_json"]) if row["details_json"] else {},
            error_message=row["error_message"],
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are logged, never raised."""
        try:
            await self._db.execute(
                """
                INSERT INTO audit_log
                    (event_id, timestamp, event_type, severity, entity_type,
                     entity_id, description, details_json, error_message)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                event.to_row(),
            )
            return True
        except StorageError as e:
            # Audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        rows = await self._db.fetchall(
            """
            SELECT * FROM audit_log
            WHERE entity_type = ? AND entity_id = ?
            ORDER BY timestamp, rowid
            """,
            (entity_type, str(entity_id)),
        )
        return [self._row_to_event(row) for row in rows]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        rows = await self._db.fetchall(
            "SELECT * FROM audit_log ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [self._row_to_event(row) for row in rows]
