"""
Transfers Between Accounts

A transfer is written as two linked transactions sharing one transfer_id:
- an EXPENSE leg on the source account
- an EARNING leg on the destination account

Both legs and both balances are written in one database transaction, so
money is never created or destroyed by a partial transfer and the ledger
invariant holds for both accounts.
"""

from typing import Optional
from uuid import uuid4

import structlog

from trove.audit import AuditLogger
from trove.config import LedgerSettings, get_settings
from trove.ledger.ledger import InsufficientBalanceError
from trove.models.account import utc_now
from trove.models.transaction import (
    TRANSFER_CATEGORY,
    Transaction,
    TransactionType,
    TransferRequest,
    TransferResult,
)
from trove.services.storage import (
    AccountStorageInterface,
    NotFoundError,
    SQLiteDatabase,
    TransactionStorageInterface,
)
from trove.validation import LedgerValidator, ValidationError


logger = structlog.get_logger(__name__)


class TransferService:
    """Moves money between two accounts atomically."""

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

    async def transfer(self, request: TransferRequest) -> TransferResult:
        """
        Debit the source account and credit the destination.

        Raises:
            ValidationError: Non-positive amount, same account on both
                sides, or the destination would exceed the balance limit
            NotFoundError: Either account does not exist
            InsufficientBalanceError: The source balance is below the amount

        On any error nothing is written.
        """
        try:
            return await self._transfer(request)
        except (ValidationError, NotFoundError, InsufficientBalanceError) as e:
            logger.info("transfer_rejected", reason=str(e))
            if self._audit_logger:
                await self._audit_logger.log_transfer_rejected(
                    from_account_id=request.from_account_id,
                    to_account_id=request.to_account_id,
                    amount=request.amount,
                    reason=str(e),
                )
            raise

    async def _transfer(self, request: TransferRequest) -> TransferResult:
        self._validator.raise_for_errors(self._validator.validate_transfer(request))

        transfer_id = uuid4()
        now = utc_now()
        occurred_at = request.occurred_at or now

        async with self._db.transaction():
            source = await self._accounts.get_account(request.from_account_id)
            if source is None:
                raise NotFoundError(f"Source account {request.from_account_id} not found")
            destination = await self._accounts.get_account(request.to_account_id)
            if destination is None:
                raise NotFoundError(
                    f"Destination account {request.to_account_id} not found"
                )

            if source.balance < request.amount:
                raise InsufficientBalanceError(source.id, source.balance, request.amount)

            from_balance = source.balance - request.amount
            to_balance = destination.balance + request.amount
            issues = self._validator.check_balance("to_account_id", to_balance)
            if issues:
                raise ValidationError("; ".join(i.message for i in issues), issues)

            debit = Transaction(
                name=request.note or f"Transfer to {destination.display_name}",
                type=TransactionType.EXPENSE,
                amount=request.amount,
                occurred_at=occurred_at,
                category=TRANSFER_CATEGORY,
                account_id=source.id,
                transfer_id=transfer_id,
                transfer_account_id=destination.id,
                created_at=now,
                updated_at=now,
            )
            credit = Transaction(
                name=request.note or f"Transfer from {source.display_name}",
                type=TransactionType.EARNING,
                amount=request.amount,
                occurred_at=occurred_at,
                category=TRANSFER_CATEGORY,
                account_id=destination.id,
                transfer_id=transfer_id,
                transfer_account_id=source.id,
                created_at=now,
                updated_at=now,
            )

            await self._transactions.insert_transaction(debit)
            await self._transactions.insert_transaction(credit)
            await self._accounts.set_balance(source.id, from_balance)
            await self._accounts.set_balance(destination.id, to_balance)

        logger.info(
            "transfer_completed",
            transfer_id=str(transfer_id),
            amount=str(request.amount),
        )
        if self._audit_logger:
            await self._audit_logger.log_transfer_completed(
                transfer_id=transfer_id,
                from_account_id=source.id,
                to_account_id=destination.id,
                amount=request.amount,
            )

        return TransferResult(
            transfer_id=transfer_id,
            from_account_id=source.id,
            to_account_id=destination.id,
            amount=request.amount,
            from_balance=from_balance,
            to_balance=to_balance,
            debit_transaction_id=debit.id,
            credit_transaction_id=credit.id,
        )
