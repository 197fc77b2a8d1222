"""
Tests for the user-facing flows

Flows never raise for expected failures; they return an OperationResult
whose message can be shown to the user directly.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from conftest import new_account

from trove.models import (
    AccountType,
    AccountUpdate,
    AuditEventType,
    NewAccount,
    NewTransaction,
    TransactionType,
    TransactionUpdate,
    TransferRequest,
)
from trove.orchestrator import AppComponents, create_app_components
from trove.services.storage import StorageError


@pytest_asyncio.fixture
async def app(settings):
    components = create_app_components(settings)
    await components.init()
    yield components
    await components.close()


async def add_account(app: AppComponents, provider: str = "BDO", balance: str = "0"):
    result = await app.account_flow.create_account(
        new_account(provider=provider, initial_balance=balance)
    )
    assert result.success, result.message
    return result.data


class TestAppComponents:

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes(self, settings):
        async with create_app_components(settings) as components:
            assert components.database.is_connected
        assert not components.database.is_connected

    @pytest.mark.asyncio
    async def test_components_share_one_database(self, app):
        account = await add_account(app, balance="10")
        assert await app.queries.total_balance() == Decimal("10")
        assert (await app.account_storage.get_account(account.id)).balance == Decimal("10")


class TestAccountFlow:

    @pytest.mark.asyncio
    async def test_create(self, app):
        result = await app.account_flow.create_account(new_account(initial_balance="1000"))

        assert result.success is True
        assert result.message == "Account added successfully!"
        assert result.data.balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_create_invalid(self, app):
        result = await app.account_flow.create_account(
            NewAccount(account_name="Juan", type=AccountType.CASH)
        )

        assert result.success is False
        assert result.error_type == "ValidationError"
        assert "provider is required" in result.message

    @pytest.mark.asyncio
    async def test_create_is_audited(self, app):
        account = await add_account(app)
        events = await app.audit_storage.get_events_by_entity("account", account.id)
        assert [e.event_type for e in events] == [AuditEventType.ACCOUNT_CREATED]

    @pytest.mark.asyncio
    async def test_update(self, app):
        account = await add_account(app)
        result = await app.account_flow.update_account(account.id, AccountUpdate(nickname="Main"))

        assert result.success is True
        assert result.message == "Account updated successfully!"
        assert result.data.nickname == "Main"

    @pytest.mark.asyncio
    async def test_update_nothing(self, app):
        account = await add_account(app)
        result = await app.account_flow.update_account(account.id, AccountUpdate())
        assert result.success is False

    @pytest.mark.asyncio
    async def test_update_missing(self, app):
        result = await app.account_flow.update_account(uuid4(), AccountUpdate(provider="BPI"))
        assert result.success is False
        assert result.error_type == "NotFoundError"

    @pytest.mark.asyncio
    async def test_delete(self, app):
        account = await add_account(app)

        result = await app.account_flow.delete_account(account.id)
        assert result.message == "Account deleted successfully!"

        again = await app.account_flow.delete_account(account.id)
        assert again.success is False
        assert again.message == "Account not found."

    @pytest.mark.asyncio
    async def test_storage_failure_gives_generic_message(self, app, monkeypatch):
        async def broken(account):
            raise StorageError("disk I/O error")

        monkeypatch.setattr(app.account_storage, "create_account", broken)

        result = await app.account_flow.create_account(new_account())

        assert result.success is False
        assert result.message == "Failed to add account."
        assert result.error_type == "StorageError"

        events = await app.audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SYSTEM_ERROR


class TestTransactionFlow:

    @pytest.mark.asyncio
    async def test_record_expense(self, app):
        account = await add_account(app, balance="1000")

        result = await app.transaction_flow.record(NewTransaction(
            name="Groceries",
            type=TransactionType.EXPENSE,
            amount=Decimal("200"),
            category="Food",
            account_id=account.id,
        ))

        assert result.success is True
        assert result.message == "Expense added successfully!"
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_record_returns_warnings(self, app):
        account = await add_account(app)

        result = await app.transaction_flow.record(NewTransaction(
            name="Side gig",
            type=TransactionType.EARNING,
            amount=Decimal("50"),
            category="Tips",
            account_id=account.id,
        ))

        assert result.success is True
        assert result.message == "Earning added successfully!"
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_record_insufficient(self, app):
        account = await add_account(app, balance="10")

        result = await app.transaction_flow.record(NewTransaction(
            name="Shoes",
            type=TransactionType.EXPENSE,
            amount=Decimal("20"),
            category="Shopping",
            account_id=account.id,
        ))

        assert result.success is False
        assert result.message == "Insufficient account balance."
        assert result.error_type == "InsufficientBalanceError"

    @pytest.mark.asyncio
    async def test_record_unknown_account(self, app):
        result = await app.transaction_flow.record(NewTransaction(
            name="Salary",
            type=TransactionType.EARNING,
            amount=Decimal("20"),
            category="Salary",
            account_id=uuid4(),
        ))
        assert result.error_type == "NotFoundError"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, app):
        account = await add_account(app, balance="1000")
        recorded = await app.transaction_flow.record(NewTransaction(
            name="Groceries",
            type=TransactionType.EXPENSE,
            amount=Decimal("200"),
            category="Food",
            account_id=account.id,
        ))

        updated = await app.transaction_flow.update(
            recorded.data.id, TransactionUpdate(amount=Decimal("250"))
        )
        assert updated.success is True
        assert (await app.account_storage.get_account(account.id)).balance == Decimal("750")

        deleted = await app.transaction_flow.delete(recorded.data.id)
        assert deleted.success is True
        assert (await app.account_storage.get_account(account.id)).balance == Decimal("1000")

        missing = await app.transaction_flow.delete(recorded.data.id)
        assert missing.message == "Transaction not found."


class TestTransferFlow:

    @pytest.mark.asyncio
    async def test_transfer(self, app):
        a = await add_account(app, provider="BDO", balance="300")
        b = await add_account(app, provider="GCash", balance="100")

        result = await app.transfer_flow.transfer(
            TransferRequest(from_account_id=a.id, to_account_id=b.id, amount=Decimal("150"))
        )

        assert result.success is True
        assert result.data.from_balance == Decimal("150")
        assert result.data.to_balance == Decimal("250")

    @pytest.mark.asyncio
    async def test_insufficient(self, app):
        a = await add_account(app, provider="BDO", balance="300")
        b = await add_account(app, provider="GCash", balance="100")

        result = await app.transfer_flow.transfer(
            TransferRequest(from_account_id=a.id, to_account_id=b.id, amount=Decimal("400"))
        )

        assert result.success is False
        assert result.message == "Insufficient balance in source account."

    @pytest.mark.asyncio
    async def test_same_account(self, app):
        a = await add_account(app, balance="300")

        result = await app.transfer_flow.transfer(
            TransferRequest(from_account_id=a.id, to_account_id=a.id, amount=Decimal("1"))
        )

        assert result.success is False
        assert result.error_type == "ValidationError"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
