"""Audit recording for workflow mutations."""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from subsidy.db.models import AuditLog
from subsidy.db.store import PersistenceStore

logger = logging.getLogger(__name__)


class AuditRecorder:
    """
    Appends before/after snapshots of mutated records.

    A failed audit write is logged and swallowed: the parent transition
    still commits, only the audit row is lost.
    """

    def __init__(self, store: PersistenceStore):
        self.store = store

    def record(
        self,
        operation: str,
        table_name: str,
        record_id: Optional[UUID],
        old_values: Optional[Dict[str, Any]],
        new_values: Optional[Dict[str, Any]],
        user_id: Optional[UUID],
    ) -> Optional[AuditLog]:
        """
        Append one audit entry.

        Returns:
            The stored entry, or None if the write failed
        """
        entry = AuditLog.create_entry(
            operation,
            table_name,
            record_id,
            old_values=old_values,
            new_values=new_values,
            user_id=user_id,
        )
        try:
            return self.store.append_audit(entry)
        except SQLAlchemyError:
            logger.exception(f"Failed to write audit entry {operation} on {table_name} {record_id}")
            return None
