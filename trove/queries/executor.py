"""
Balance and History Queries

DESIGN DECISION: Queries are read-only and DETERMINISTIC.
Totals come from the cached balances the ledger maintains; per-account
summaries come from the stored transaction rows. Nothing here estimates
or writes.
"""

from datetime import timezone, tzinfo
from decimal import Decimal
from itertools import groupby
from typing import Optional
from uuid import UUID

from trove.models.account import AccountType
from trove.models.transaction import (
    AccountSummary,
    DailyTransactions,
    Transaction,
    TransactionType,
)
from trove.services.storage import (
    AccountStorageInterface,
    NotFoundError,
    TransactionStorageInterface,
)


def group_by_day(
    transactions: list[Transaction],
    tz: tzinfo = timezone.utc,
) -> list[DailyTransactions]:
    """
    Bucket transactions by calendar day in `tz`.

    Transactions are sorted newest first and so are the buckets.
    """
    ordered = sorted(transactions, key=lambda t: t.occurred_at, reverse=True)

    def local_day(transaction: Transaction):
        return transaction.occurred_at.astimezone(tz).date()

    return [
        DailyTransactions(day=day, transactions=list(items))
        for day, items in groupby(ordered, key=local_day)
    ]


class BalanceQueries:
    """
    Read-side queries over accounts and transactions.

    GUARANTEES:
    - Only returns real data from storage
    - Empty stores give zero totals, never errors
    """

    def __init__(
        self,
        accounts: AccountStorageInterface,
        transactions: TransactionStorageInterface,
    ):
        self._accounts = accounts
        self._transactions = transactions

    async def total_balance(self) -> Decimal:
        """Sum of every account's balance."""
        return await self._accounts.get_total_balance()

    async def balance_by_type(self, account_type: AccountType) -> Decimal:
        return await self._accounts.get_total_balance_by_type(account_type)

    async def balances_by_type(self) -> dict[AccountType, Decimal]:
        """Total balance for every account type, including empty ones."""
        return {
            account_type: await self._accounts.get_total_balance_by_type(account_type)
            for account_type in AccountType
        }

    async def transactions_grouped_by_day(
        self,
        transactions: Optional[list[Transaction]] = None,
        tz: tzinfo = timezone.utc,
    ) -> list[DailyTransactions]:
        """
        Group transactions by the day they occurred.

        Args:
            transactions: Transactions to group; all stored ones if None
            tz: Timezone that decides where one day ends
        """
        if transactions is None:
            transactions = await self._transactions.list_transactions()
        return group_by_day(transactions, tz)

    async def account_summary(self, account_id: UUID) -> AccountSummary:
        """
        Earning and expense totals for one account.

        Raises:
            NotFoundError: The account does not exist
        """
        account = await self._accounts.get_account(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")

        return AccountSummary(
            account_id=account.id,
            account_type=account.type,
            balance=account.balance,
            total_earnings=await self._transactions.total_by_type_for_account(
                account_id, TransactionType.EARNING
            ),
            total_expenses=await self._transactions.total_by_type_for_account(
                account_id, TransactionType.EXPENSE
            ),
            transaction_count=await self._transactions.count_by_account(account_id),
        )
