"""Workflow task model."""

import uuid
from enum import Enum
from typing import Any, Dict

from sqlalchemy import Column, String, DateTime, Integer, Text, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from subsidy.db.base import Base, utcnow


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class Task(Base):
    """
    Work item attached to an application.

    Auto-generated tasks are created when an application enters a stage
    that needs a human to act; staff can also create tasks by hand.
    """
    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id = Column(Uuid, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True)

    task_type = Column(String(50), nullable=False, default="WORKFLOW_STEP")
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    assigned_to = Column(Uuid, nullable=True, index=True)
    assigned_by = Column(Uuid, nullable=True)
    status = Column(String(20), nullable=False, default=TaskStatus.PENDING.value, index=True)
    priority = Column(Integer, nullable=False, default=3)
    due_date = Column(DateTime, nullable=True)
    auto_generated = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)

    application = relationship("Application", back_populates="tasks")

    def __repr__(self) -> str:
        return f"<Task {self.title!r} [{self.status}]>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "application_id": str(self.application_id),
            "task_type": self.task_type,
            "title": self.title,
            "description": self.description,
            "assigned_to": str(self.assigned_to) if self.assigned_to else None,
            "assigned_by": str(self.assigned_by) if self.assigned_by else None,
            "status": self.status,
            "priority": self.priority,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "auto_generated": self.auto_generated,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
