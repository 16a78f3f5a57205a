"""Audit log model.

Entries are append-only. Nothing in the application updates or deletes
an audit row once written.
"""

import uuid
from typing import Optional, Dict, Any

from sqlalchemy import Column, String, DateTime, JSON, Uuid

from subsidy.db.base import Base, utcnow


class AuditLog(Base):
    """
    Before/after snapshot of a mutated record.

    ``record_id`` is not a foreign key so that audit rows outlive the
    records they describe.
    """
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    operation = Column(String(50), nullable=False, index=True)
    table_name = Column(String(100), nullable=False, index=True)
    record_id = Column(Uuid, nullable=True, index=True)

    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)

    user_id = Column(Uuid, nullable=True, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.operation} on {self.table_name} by user {self.user_id}>"

    @classmethod
    def create_entry(
        cls,
        operation: str,
        table_name: str,
        record_id: Optional[uuid.UUID] = None,
        *,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            operation: Operation performed (e.g., 'INSERT', 'UPDATE')
            table_name: Table of the affected record
            record_id: ID of the affected record
            old_values: Previous values (for updates)
            new_values: New values (for inserts/updates)
            user_id: ID of the acting user (None for system actions)
        """
        return cls(
            operation=operation,
            table_name=table_name,
            record_id=record_id,
            old_values=old_values,
            new_values=new_values,
            user_id=user_id,
            timestamp=utcnow(),
        )
