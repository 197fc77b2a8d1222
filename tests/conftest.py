"""
Shared fixtures

Every test that touches storage gets its own SQLite file under tmp_path.
"""

from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio

from trove.audit import AuditLogger
from trove.config import AppSettings, DatabaseSettings, LedgerSettings, Settings
from trove.ledger import AccountLedger, TransferService
from trove.models import AccountType, NewAccount
from trove.queries import BalanceQueries
from trove.services.storage import (
    SQLiteAccountStorage,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteTransactionStorage,
)
from trove.validation import LedgerValidator


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary database file."""
    return Settings(
        database=DatabaseSettings(path=tmp_path / "trove.db"),
        ledger=LedgerSettings(),
        app=AppSettings(),
    )


@pytest.fixture
def validator(settings: Settings) -> LedgerValidator:
    return LedgerValidator(settings.ledger)


@pytest_asyncio.fixture
async def db(settings: Settings):
    """An initialized database, closed after the test."""
    database = SQLiteDatabase(settings.database)
    await database.init()
    yield database
    await database.close()


@pytest.fixture
def accounts(db: SQLiteDatabase, validator: LedgerValidator) -> SQLiteAccountStorage:
    return SQLiteAccountStorage(db, validator)


@pytest.fixture
def transactions(db: SQLiteDatabase) -> SQLiteTransactionStorage:
    return SQLiteTransactionStorage(db)


@pytest.fixture
def audit_storage(db: SQLiteDatabase) -> SQLiteAuditStorage:
    return SQLiteAuditStorage(db)


@pytest.fixture
def audit_logger(audit_storage: SQLiteAuditStorage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def ledger(db, accounts, transactions, validator, audit_logger, settings) -> AccountLedger:
    return AccountLedger(
        db,
        accounts,
        transactions,
        validator=validator,
        audit_logger=audit_logger,
        settings=settings.ledger,
    )


@pytest.fixture
def transfers(db, accounts, transactions, validator, audit_logger, settings) -> TransferService:
    return TransferService(
        db,
        accounts,
        transactions,
        validator=validator,
        audit_logger=audit_logger,
        settings=settings.ledger,
    )


@pytest.fixture
def queries(accounts, transactions) -> BalanceQueries:
    return BalanceQueries(accounts, transactions)


def new_account(
    provider: str = "BDO",
    account_name: str = "Juan Dela Cruz",
    account_type: AccountType = AccountType.SAVINGS,
    initial_balance: str = "0",
    nickname=None,
) -> NewAccount:
    """Build a valid NewAccount with sensible defaults."""
    return NewAccount(
        provider=provider,
        account_name=account_name,
        type=account_type,
        initial_balance=Decimal(initial_balance),
        nickname=nickname,
    )
