"""
Tests for AccountLedger

The core property checked throughout:
    balance == initial_balance + sum(signed amounts of the account's transactions)
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from conftest import new_account

from trove.config import LedgerSettings
from trove.ledger import AccountLedger, InsufficientBalanceError
from trove.models import (
    AuditEventType,
    NewTransaction,
    TransactionType,
    TransactionUpdate,
    TransferRequest,
)
from trove.queries import group_by_day
from trove.services.storage import NotFoundError
from trove.validation import LedgerValidator, ValidationError


def earning(account_id, amount: str, name: str = "Salary") -> NewTransaction:
    return NewTransaction(
        name=name,
        type=TransactionType.EARNING,
        amount=Decimal(amount),
        category="Salary",
        account_id=account_id,
    )


def expense(account_id, amount: str, name: str = "Groceries") -> NewTransaction:
    return NewTransaction(
        name=name,
        type=TransactionType.EXPENSE,
        amount=Decimal(amount),
        category="Food",
        account_id=account_id,
    )


async def assert_consistent(ledger: AccountLedger, accounts, account_id) -> None:
    account = await accounts.get_account(account_id)
    assert account.balance == await ledger.expected_balance(account)


class TestCreateTransaction:
    """Recording earnings and expenses."""

    @pytest.mark.asyncio
    async def test_earning_then_expense(self, ledger, accounts):
        """BDO 1000 -> +500 -> -200 ends at 1300 with two history rows."""
        account = await accounts.create_account(new_account(initial_balance="1000"))

        await ledger.create_transaction(earning(account.id, "500"))
        await ledger.create_transaction(expense(account.id, "200"))

        stored = await accounts.get_account(account.id)
        assert stored.balance == Decimal("1300")
        await assert_consistent(ledger, accounts, account.id)

    @pytest.mark.asyncio
    async def test_datetime_defaults_to_now(self, ledger, accounts):
        account = await accounts.create_account(new_account())
        before = datetime.now(timezone.utc)

        tx = await ledger.create_transaction(earning(account.id, "1"))

        assert tx.occurred_at >= before
        assert tx.occurred_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_explicit_datetime_is_kept(self, ledger, transactions, accounts):
        account = await accounts.create_account(new_account())
        when = datetime(2024, 12, 25, 9, 0, tzinfo=timezone.utc)
        new = earning(account.id, "1")
        new.occurred_at = when

        tx = await ledger.create_transaction(new)

        stored = await transactions.get_transaction(tx.id)
        assert stored.occurred_at == when

    @pytest.mark.asyncio
    async def test_naive_datetime_is_taken_as_utc(self, ledger, transactions, accounts):
        """The returned transaction matches the stored row and groups on the same day."""
        account = await accounts.create_account(new_account())
        new = NewTransaction(
            name="Salary",
            type=TransactionType.EARNING,
            amount=Decimal("1"),
            category="Salary",
            account_id=account.id,
            occurred_at=datetime(2024, 1, 2, 3, 0),
        )

        tx = await ledger.create_transaction(new)
        stored = await transactions.get_transaction(tx.id)

        assert tx.occurred_at == datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc)
        assert tx.occurred_at.tzinfo is not None
        assert stored.occurred_at == tx.occurred_at

        groups = group_by_day([stored, tx])
        assert [g.day for g in groups] == [date(2024, 1, 2)]
        assert len(groups[0].transactions) == 2

    @pytest.mark.asyncio
    async def test_naive_datetime_on_update(self, ledger, transactions, accounts):
        account = await accounts.create_account(new_account())
        tx = await ledger.create_transaction(earning(account.id, "1"))

        updated = await ledger.update_transaction(
            tx.id, TransactionUpdate(occurred_at=datetime(2024, 6, 1, 23, 30))
        )

        assert updated.occurred_at == datetime(2024, 6, 1, 23, 30, tzinfo=timezone.utc)
        assert (await transactions.get_transaction(tx.id)).occurred_at == updated.occurred_at

    @pytest.mark.asyncio
    async def test_rejects_zero_amount(self, ledger, accounts, transactions):
        account = await accounts.create_account(new_account(initial_balance="100"))

        with pytest.raises(ValidationError, match="greater than zero"):
            await ledger.create_transaction(expense(account.id, "0"))

        assert (await accounts.get_account(account.id)).balance == Decimal("100")
        assert await transactions.count_by_account(account.id) == 0

    @pytest.mark.asyncio
    async def test_rejects_missing_name(self, ledger, accounts):
        account = await accounts.create_account(new_account())
        with pytest.raises(ValidationError, match="name is required"):
            await ledger.create_transaction(earning(account.id, "5", name=""))

    @pytest.mark.asyncio
    async def test_unknown_account(self, ledger, transactions):
        with pytest.raises(NotFoundError):
            await ledger.create_transaction(earning(uuid4(), "5"))
        assert await transactions.list_transactions() == []

    @pytest.mark.asyncio
    async def test_expense_cannot_overdraw(self, ledger, accounts, transactions):
        account = await accounts.create_account(new_account(initial_balance="100"))

        with pytest.raises(InsufficientBalanceError):
            await ledger.create_transaction(expense(account.id, "100.01"))

        assert (await accounts.get_account(account.id)).balance == Decimal("100")
        assert await transactions.count_by_account(account.id) == 0

    @pytest.mark.asyncio
    async def test_expense_may_empty_account(self, ledger, accounts):
        account = await accounts.create_account(new_account(initial_balance="100"))
        await ledger.create_transaction(expense(account.id, "100"))
        assert (await accounts.get_account(account.id)).balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_overdraw_allowed_when_configured(
        self, db, accounts, transactions, validator
    ):
        ledger = AccountLedger(
            db,
            accounts,
            transactions,
            validator=validator,
            settings=LedgerSettings(allow_negative_balance=True),
        )
        account = await accounts.create_account(new_account(initial_balance="10"))

        await ledger.create_transaction(expense(account.id, "25"))

        assert (await accounts.get_account(account.id)).balance == Decimal("-15")

    @pytest.mark.asyncio
    async def test_balance_limit(self, ledger, accounts):
        account = await accounts.create_account(new_account(initial_balance="999999999999"))

        with pytest.raises(ValidationError, match="Balance cannot exceed"):
            await ledger.create_transaction(earning(account.id, "2"))

    @pytest.mark.asyncio
    async def test_audited(self, ledger, accounts, audit_storage):
        account = await accounts.create_account(new_account())
        tx = await ledger.create_transaction(earning(account.id, "5"))

        events = await audit_storage.get_events_by_entity("transaction", tx.id)
        assert [e.event_type for e in events] == [AuditEventType.TRANSACTION_RECORDED]


class TestUpdateTransaction:
    """Edits reverse the old effect and apply the new one."""

    @pytest.mark.asyncio
    async def test_change_amount(self, ledger, accounts):
        account = await accounts.create_account(new_account(initial_balance="1000"))
        tx = await ledger.create_transaction(expense(account.id, "200"))

        updated = await ledger.update_transaction(
            tx.id, TransactionUpdate(amount=Decimal("300"))
        )

        assert updated.amount == Decimal("300")
        assert (await accounts.get_account(account.id)).balance == Decimal("700")
        await assert_consistent(ledger, accounts, account.id)

    @pytest.mark.asyncio
    async def test_change_type(self, ledger, accounts):
        account = await accounts.create_account(new_account(initial_balance="1000"))
        tx = await ledger.create_transaction(expense(account.id, "200"))

        await ledger.update_transaction(tx.id, TransactionUpdate(type=TransactionType.EARNING))

        assert (await accounts.get_account(account.id)).balance == Decimal("1200")

    @pytest.mark.asyncio
    async def test_move_to_other_account(self, ledger, accounts):
        a = await accounts.create_account(new_account(provider="A", initial_balance="1000"))
        b = await accounts.create_account(new_account(provider="B", initial_balance="1000"))
        tx = await ledger.create_transaction(expense(a.id, "200"))

        await ledger.update_transaction(tx.id, TransactionUpdate(account_id=b.id))

        assert (await accounts.get_account(a.id)).balance == Decimal("1000")
        assert (await accounts.get_account(b.id)).balance == Decimal("800")
        await assert_consistent(ledger, accounts, a.id)
        await assert_consistent(ledger, accounts, b.id)

    @pytest.mark.asyncio
    async def test_non_money_fields_leave_balance(self, ledger, accounts):
        account = await accounts.create_account(new_account(initial_balance="1000"))
        tx = await ledger.create_transaction(expense(account.id, "200"))

        updated = await ledger.update_transaction(tx.id, TransactionUpdate(name="Market"))

        assert updated.name == "Market"
        assert (await accounts.get_account(account.id)).balance == Decimal("800")

    @pytest.mark.asyncio
    async def test_empty_update_returns_unchanged(self, ledger, accounts):
        account = await accounts.create_account(new_account(initial_balance="1000"))
        tx = await ledger.create_transaction(expense(account.id, "200"))

        unchanged = await ledger.update_transaction(tx.id, TransactionUpdate())

        assert unchanged == tx

    @pytest.mark.asyncio
    async def test_overdraw_rejected_and_nothing_changes(self, ledger, accounts, transactions):
        account = await accounts.create_account(new_account(initial_balance="1000"))
        tx = await ledger.create_transaction(expense(account.id, "200"))

        with pytest.raises(InsufficientBalanceError):
            await ledger.update_transaction(tx.id, TransactionUpdate(amount=Decimal("5000")))

        assert (await accounts.get_account(account.id)).balance == Decimal("800")
        assert (await transactions.get_transaction(tx.id)).amount == Decimal("200")

    @pytest.mark.asyncio
    async def test_missing_transaction(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.update_transaction(uuid4(), TransactionUpdate(name="x"))

    @pytest.mark.asyncio
    async def test_missing_target_account(self, ledger, accounts):
        account = await accounts.create_account(new_account(initial_balance="1000"))
        tx = await ledger.create_transaction(expense(account.id, "200"))

        with pytest.raises(NotFoundError):
            await ledger.update_transaction(tx.id, TransactionUpdate(account_id=uuid4()))
        assert (await accounts.get_account(account.id)).balance == Decimal("800")

    @pytest.mark.asyncio
    async def test_transfer_legs_cannot_be_edited(self, ledger, transfers, accounts):
        a = await accounts.create_account(new_account(provider="A", initial_balance="100"))
        b = await accounts.create_account(new_account(provider="B"))
        result = await transfers.transfer(
            TransferRequest(from_account_id=a.id, to_account_id=b.id, amount=Decimal("50"))
        )

        with pytest.raises(ValidationError, match="Transfer transactions cannot be edited"):
            await ledger.update_transaction(
                result.debit_transaction_id, TransactionUpdate(amount=Decimal("10"))
            )


class TestDeleteTransaction:
    """Deletes reverse the transaction's effect."""

    @pytest.mark.asyncio
    async def test_delete_expense_restores_balance(self, ledger, accounts, transactions):
        account = await accounts.create_account(new_account(initial_balance="1000"))
        tx = await ledger.create_transaction(expense(account.id, "200"))

        assert await ledger.delete_transaction(tx.id) is True

        assert (await accounts.get_account(account.id)).balance == Decimal("1000")
        assert await transactions.get_transaction(tx.id) is None

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, ledger):
        assert await ledger.delete_transaction(uuid4()) is False

    @pytest.mark.asyncio
    async def test_delete_earning_may_go_negative(self, ledger, accounts):
        """Removing history is never blocked by the overdraft rule."""
        account = await accounts.create_account(new_account())
        income = await ledger.create_transaction(earning(account.id, "100"))
        await ledger.create_transaction(expense(account.id, "80"))

        await ledger.delete_transaction(income.id)

        assert (await accounts.get_account(account.id)).balance == Decimal("-80")
        await assert_consistent(ledger, accounts, account.id)

    @pytest.mark.asyncio
    async def test_delete_one_leg_removes_transfer(
        self, ledger, transfers, accounts, transactions
    ):
        a = await accounts.create_account(new_account(provider="A", initial_balance="300"))
        b = await accounts.create_account(new_account(provider="B", initial_balance="100"))
        result = await transfers.transfer(
            TransferRequest(from_account_id=a.id, to_account_id=b.id, amount=Decimal("150"))
        )

        assert await ledger.delete_transaction(result.credit_transaction_id) is True

        assert (await accounts.get_account(a.id)).balance == Decimal("300")
        assert (await accounts.get_account(b.id)).balance == Decimal("100")
        assert await transactions.list_transactions_by_transfer(result.transfer_id) == []


class TestMaintenance:
    """recompute_balance and reconcile."""

    @pytest.mark.asyncio
    async def test_recompute_repairs_drift(self, ledger, accounts):
        account = await accounts.create_account(new_account(initial_balance="1000"))
        await ledger.create_transaction(earning(account.id, "500"))
        await accounts.set_balance(account.id, Decimal("1"))

        assert await ledger.recompute_balance(account.id) == Decimal("1500")
        assert (await accounts.get_account(account.id)).balance == Decimal("1500")

    @pytest.mark.asyncio
    async def test_recompute_missing_account(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.recompute_balance(uuid4())

    @pytest.mark.asyncio
    async def test_reconcile_reports_without_repair(self, ledger, accounts):
        good = await accounts.create_account(new_account(provider="Good", initial_balance="5"))
        bad = await accounts.create_account(new_account(provider="Bad", initial_balance="10"))
        await accounts.set_balance(bad.id, Decimal("7"))

        drifts = await ledger.reconcile()

        assert [d.account_id for d in drifts] == [bad.id]
        assert drifts[0].expected_balance == Decimal("10")
        assert drifts[0].repaired is False
        assert (await accounts.get_account(bad.id)).balance == Decimal("7")
        assert (await accounts.get_account(good.id)).balance == Decimal("5")

    @pytest.mark.asyncio
    async def test_reconcile_repair(self, ledger, accounts):
        bad = await accounts.create_account(new_account(initial_balance="10"))
        await accounts.set_balance(bad.id, Decimal("7"))

        drifts = await ledger.reconcile(repair=True)

        assert drifts[0].repaired is True
        assert (await accounts.get_account(bad.id)).balance == Decimal("10")
        assert await ledger.reconcile() == []


class TestValidatorIntegration:
    """The ledger honours a custom validator's limits."""

    @pytest.mark.asyncio
    async def test_custom_max_balance(self, db, accounts, transactions):
        limits = LedgerSettings(max_balance=Decimal("100"))
        ledger = AccountLedger(
            db, accounts, transactions, validator=LedgerValidator(limits), settings=limits
        )
        account = await accounts.create_account(new_account(initial_balance="90"))

        with pytest.raises(ValidationError):
            await ledger.create_transaction(earning(account.id, "11"))
        await ledger.create_transaction(earning(account.id, "10"))

        assert (await accounts.get_account(account.id)).balance == Decimal("100")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
