"""
Audit Logger

DESIGN DECISION: Every change to money or to the store is logged.
This provides:
1. Traceability of every balance change
2. Debugging capability when a balance drifts
3. A history the user can inspect after a restore or reset

The audit logger:
- Is async so it composes with the storage layer
- Gracefully handles failures (doesn't crash the app if logging fails)
- Always writes a structured local log line, even without storage
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from trove.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from trove.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog output through the standard library at `level`.

    filter_by_level defers to the stdlib logger's level, so this is
    what decides which events actually get rendered.
    """
    logging.basicConfig(format="%(message)s", level=level.upper())
    logging.getLogger("trove").setLevel(level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_log table (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("trove.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def log_account_created(
        self,
        account_id: UUID,
        provider: str,
        initial_balance: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.account_created(
            account_id=account_id,
            provider=provider,
            initial_balance=initial_balance,
        ))

    async def log_account_updated(self, account_id: UUID, fields: list[str]) -> None:
        await self.log(AuditEventBuilder.account_updated(account_id, fields))

    async def log_account_deleted(self, account_id: UUID) -> None:
        await self.log(AuditEventBuilder.account_deleted(account_id))

    # -------------------------------------------------------------------------
    # Transactions and transfers
    # -------------------------------------------------------------------------

    async def log_transaction_recorded(
        self,
        transaction_id: UUID,
        account_id: UUID,
        tx_type: str,
        amount: Decimal,
        new_balance: Decimal,
    ) -> None:
        """Log an earning or expense and the balance it produced."""
        await self.log(AuditEventBuilder.transaction_recorded(
            transaction_id=transaction_id,
            account_id=account_id,
            tx_type=tx_type,
            amount=amount,
            new_balance=new_balance,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: UUID,
        fields: list[str],
        balances: dict[UUID, Decimal],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(transaction_id, fields, balances))

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        balances: dict[UUID, Decimal],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(transaction_id, balances))

    async def log_transfer_completed(
        self,
        transfer_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.transfer_completed(
            transfer_id=transfer_id,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=amount,
        ))

    async def log_transfer_rejected(
        self,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal,
        reason: str,
    ) -> None:
        """Log a transfer that was refused before anything was written."""
        await self.log(AuditEventBuilder.transfer_rejected(
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=amount,
            reason=reason,
        ))

    # -------------------------------------------------------------------------
    # Ledger maintenance
    # -------------------------------------------------------------------------

    async def log_balance_recomputed(
        self,
        account_id: UUID,
        old_balance: Decimal,
        new_balance: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.balance_recomputed(account_id, old_balance, new_balance))

    async def log_balance_drift(
        self,
        account_id: UUID,
        cached_balance: Decimal,
        expected_balance: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.balance_drift_detected(
            account_id, cached_balance, expected_balance
        ))

    # -------------------------------------------------------------------------
    # Store lifecycle
    # -------------------------------------------------------------------------

    async def log_backup_created(self, path: str) -> None:
        await self.log(AuditEventBuilder.backup_created(path))

    async def log_backup_restored(self, path: str) -> None:
        await self.log(AuditEventBuilder.backup_restored(path))

    async def log_restore_rejected(self, path: str, reason: str) -> None:
        await self.log(AuditEventBuilder.restore_rejected(path, reason))

    async def log_database_reset(self) -> None:
        await self.log(AuditEventBuilder.database_reset())

    # -------------------------------------------------------------------------
    # Failures
    # -------------------------------------------------------------------------

    async def log_validation_failed(self, subject: str, issues: list[dict]) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(subject, issues))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        ))
