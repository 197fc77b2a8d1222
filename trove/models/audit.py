"""
Audit Models for Trove

Every mutation of accounts, transactions and the store itself is logged.
This provides:
1. Traceability of every balance change
2. Debugging information when a balance drifts
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from trove.models.account import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"

    # Transactions
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Transfers
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_REJECTED = "transfer_rejected"

    # Ledger maintenance
    BALANCE_RECOMPUTED = "balance_recomputed"
    BALANCE_DRIFT_DETECTED = "balance_drift_detected"

    # Store lifecycle
    BACKUP_CREATED = "backup_created"
    BACKUP_RESTORED = "backup_restored"
    RESTORE_REJECTED = "restore_rejected"
    DATABASE_RESET = "database_reset"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'transfer')"
    )
    entity_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_row(self) -> tuple:
        """
        Convert to a row for the audit_log table.

        Columns, in order:
        (event_id, timestamp, event_type, severity, entity_type, entity_id,
         description, details_json, error_message)
        """
        return (
            str(self.event_id),
            self.timestamp.isoformat(timespec="microseconds"),
            self.event_type.value,
            self.severity.value,
            self.entity_type,
            str(self.entity_id) if self.entity_id else None,
            self.description,
            json.dumps(self.details, default=str) if self.details else None,
            self.error_message,
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.account_created(account_id, provider, balance)
        event = AuditEventBuilder.transfer_completed(transfer_id, ...)
    """

    @staticmethod
    def account_created(
        account_id: UUID,
        provider: str,
        initial_balance: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account_id,
            description=f"Account created at {provider}",
            details={
                "provider": provider,
                "initial_balance": str(initial_balance),
            },
        )

    @staticmethod
    def account_updated(account_id: UUID, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            entity_type="account",
            entity_id=account_id,
            description=f"Account updated: {', '.join(sorted(fields))}",
            details={"fields": sorted(fields)},
        )

    @staticmethod
    def account_deleted(account_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            description="Account deleted together with its transactions",
        )

    @staticmethod
    def transaction_recorded(
        transaction_id: UUID,
        account_id: UUID,
        tx_type: str,
        amount: Decimal,
        new_balance: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"{tx_type.capitalize()} of {amount} recorded",
            details={
                "account_id": str(account_id),
                "type": tx_type,
                "amount": str(amount),
                "new_balance": str(new_balance),
            },
        )

    @staticmethod
    def transaction_updated(
        transaction_id: UUID,
        fields: list[str],
        balances: dict[UUID, Decimal],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction updated: {', '.join(sorted(fields))}",
            details={
                "fields": sorted(fields),
                "balances": {str(k): str(v) for k, v in balances.items()},
            },
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        balances: dict[UUID, Decimal],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted and balance reversed",
            details={"balances": {str(k): str(v) for k, v in balances.items()}},
        )

    @staticmethod
    def transfer_completed(
        transfer_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            entity_type="transfer",
            entity_id=transfer_id,
            description=f"Transferred {amount} between accounts",
            details={
                "from_account_id": str(from_account_id),
                "to_account_id": str(to_account_id),
                "amount": str(amount),
            },
        )

    @staticmethod
    def transfer_rejected(
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="transfer",
            description=f"Transfer rejected: {reason}",
            details={
                "from_account_id": str(from_account_id),
                "to_account_id": str(to_account_id),
                "amount": str(amount),
            },
            error_message=reason,
        )

    @staticmethod
    def balance_recomputed(
        account_id: UUID,
        old_balance: Decimal,
        new_balance: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_RECOMPUTED,
            entity_type="account",
            entity_id=account_id,
            description="Balance recomputed from transaction history",
            details={
                "old_balance": str(old_balance),
                "new_balance": str(new_balance),
            },
        )

    @staticmethod
    def balance_drift_detected(
        account_id: UUID,
        cached_balance: Decimal,
        expected_balance: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_DRIFT_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            description="Cached balance does not match transaction history",
            details={
                "cached_balance": str(cached_balance),
                "expected_balance": str(expected_balance),
            },
        )

    @staticmethod
    def backup_created(path: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_CREATED,
            entity_type="database",
            description="Backup created",
            details={"path": path},
        )

    @staticmethod
    def backup_restored(path: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_RESTORED,
            severity=AuditSeverity.WARNING,
            entity_type="database",
            description="Database restored from backup",
            details={"path": path},
        )

    @staticmethod
    def restore_rejected(path: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_REJECTED,
            severity=AuditSeverity.ERROR,
            entity_type="database",
            description="Backup restore rejected",
            details={"path": path},
            error_message=reason,
        )

    @staticmethod
    def database_reset() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATABASE_RESET,
            severity=AuditSeverity.WARNING,
            entity_type="database",
            description="Database reset; all accounts and transactions removed",
        )

    @staticmethod
    def validation_failed(subject: str, issues: list[dict]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=subject,
            description=f"{subject.capitalize()} validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            details=details or {},
            error_message=error_message,
        )
