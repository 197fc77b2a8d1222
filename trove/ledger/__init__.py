"""Ledger package: balance-keeping writes for transactions and transfers."""

from trove.ledger.ledger import AccountLedger, InsufficientBalanceError
from trove.ledger.transfer import TransferService

__all__ = ["AccountLedger", "InsufficientBalanceError", "TransferService"]
