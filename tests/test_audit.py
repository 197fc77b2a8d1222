"""Tests for AuditLogger and the audit_log table."""

from decimal import Decimal
from uuid import uuid4

import pytest

from trove.audit import AuditLogger
from trove.models import AuditEvent, AuditEventBuilder, AuditEventType
from trove.services.storage import AuditStorageInterface, StorageError


class BrokenAuditStorage(AuditStorageInterface):
    """Storage whose writes always blow up."""

    async def append_event(self, event):
        raise StorageError("audit table locked")

    async def get_events_by_entity(self, entity_type, entity_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:

    @pytest.mark.asyncio
    async def test_local_only(self):
        logger = AuditLogger()
        assert await logger.log(AuditEventBuilder.database_reset()) is True

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        logger = AuditLogger(BrokenAuditStorage())
        assert await logger.log(AuditEventBuilder.database_reset()) is False

    @pytest.mark.asyncio
    async def test_persists_and_reads_back(self, audit_logger, audit_storage):
        account_id = uuid4()

        await audit_logger.log_account_created(account_id, "BDO", Decimal("1000"))
        await audit_logger.log_account_updated(account_id, ["nickname"])

        events = await audit_storage.get_events_by_entity("account", account_id)
        assert [e.event_type for e in events] == [
            AuditEventType.ACCOUNT_CREATED,
            AuditEventType.ACCOUNT_UPDATED,
        ]
        assert events[0].details == {"provider": "BDO", "initial_balance": "1000"}

    @pytest.mark.asyncio
    async def test_recent_events_newest_first(self, audit_logger, audit_storage):
        await audit_logger.log_backup_created("/tmp/a.db")
        await audit_logger.log_database_reset()

        events = await audit_storage.get_recent_events(limit=1)
        assert [e.event_type for e in events] == [AuditEventType.DATABASE_RESET]

    @pytest.mark.asyncio
    async def test_error_event_round_trip(self, audit_storage):
        event = AuditEventBuilder.system_error("StorageError", "disk full", {"op": "insert"})
        assert await audit_storage.append_event(event) is True

        stored = (await audit_storage.get_recent_events())[0]
        assert stored.event_id == event.event_id
        assert stored.error_message == "disk full"
        assert stored.details == {"op": "insert"}
        assert stored.entity_id is None

    @pytest.mark.asyncio
    async def test_duplicate_event_is_reported_not_raised(self, audit_storage):
        event = AuditEvent(event_type=AuditEventType.DATABASE_RESET, description="Reset")
        assert await audit_storage.append_event(event) is True
        assert await audit_storage.append_event(event) is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
