"""Tests for audit recording."""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from subsidy.core.workflow.audit import AuditRecorder
from subsidy.db.models import AuditLog
from subsidy.db.store import SqlAlchemyStore


pytestmark = pytest.mark.db


class TestAuditRecorder:

    def test_record_appends_entry(self, db_session):
        recorder = AuditRecorder(SqlAlchemyStore(db_session))
        record_id, user_id = uuid.uuid4(), uuid.uuid4()

        entry = recorder.record(
            "UPDATE", "applications", record_id,
            {"current_state": "DRAFT"}, {"current_state": "INTAKE_REVIEW"}, user_id,
        )
        db_session.commit()

        stored = db_session.query(AuditLog).one()
        assert stored.id == entry.id
        assert stored.operation == "UPDATE"
        assert stored.table_name == "applications"
        assert stored.record_id == record_id
        assert stored.old_values == {"current_state": "DRAFT"}
        assert stored.new_values == {"current_state": "INTAKE_REVIEW"}
        assert stored.user_id == user_id
        assert stored.timestamp is not None

    def test_failed_write_is_swallowed(self, caplog):
        store = MagicMock()
        store.append_audit.side_effect = SQLAlchemyError("disk full")
        recorder = AuditRecorder(store)

        entry = recorder.record("INSERT", "applications", uuid.uuid4(), None, {}, None)

        assert entry is None
        assert "Failed to write audit entry INSERT on applications" in caplog.text
