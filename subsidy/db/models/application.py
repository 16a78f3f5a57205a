"""Application and stage step models.

An application moves through the review pipeline one stage at a time.
Every stage visit is recorded as an ``ApplicationStep`` row; steps are
only ever appended and closed, never deleted.
"""

import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    Column, String, DateTime, Integer, Numeric, Text, ForeignKey, Uuid, CheckConstraint, Index, text,
)
from sqlalchemy.orm import relationship

from subsidy.db.base import Base, utcnow


class Application(Base):
    """
    A housing subsidy application.

    ``current_state`` is written only by the workflow orchestrator.
    ``version`` is the optimistic lock counter: SQLAlchemy adds it to the
    WHERE clause of every UPDATE and raises ``StaleDataError`` when another
    writer got there first.
    """
    __tablename__ = "applications"
    __table_args__ = (
        CheckConstraint("priority_level BETWEEN 1 AND 5", name="ck_applications_priority_level"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    application_number = Column(String(50), unique=True, nullable=False, index=True)
    applicant_name = Column(String(255), nullable=True)

    # Workflow state
    current_state = Column(String(50), nullable=False, default="DRAFT", index=True)
    priority_level = Column(Integer, nullable=False, default=3)
    assigned_to = Column(Uuid, nullable=True, index=True)
    sla_deadline = Column(DateTime, nullable=True)

    # Amounts
    requested_amount = Column(Numeric(12, 2), nullable=True)
    approved_amount = Column(Numeric(12, 2), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, index=True)
    submitted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False, default=1)

    # Relationships
    steps = relationship(
        "ApplicationStep",
        back_populates="application",
        order_by="ApplicationStep.sequence",
        cascade="all, delete-orphan",
    )
    tasks = relationship("Task", back_populates="application", cascade="all, delete-orphan")
    technical_report = relationship("TechnicalReport", back_populates="application", uselist=False)
    social_report = relationship("SocialReport", back_populates="application", uselist=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Application {self.application_number} [{self.current_state}]>"

    def to_snapshot(self) -> Dict[str, Any]:
        """JSON-safe view of the mutable workflow fields, used for audit entries."""
        return {
            "current_state": self.current_state,
            "priority_level": self.priority_level,
            "assigned_to": _str_or_none(self.assigned_to),
            "requested_amount": _str_or_none(self.requested_amount),
            "approved_amount": _str_or_none(self.approved_amount),
            "submitted_at": _iso_or_none(self.submitted_at),
            "completed_at": _iso_or_none(self.completed_at),
            "sla_deadline": _iso_or_none(self.sla_deadline),
            "version": self.version,
        }


class ApplicationStep(Base):
    """
    One visit of an application to one workflow stage.

    A step with ``completed_at`` NULL is the active step. Non-terminal
    applications have exactly one; terminal applications have none.
    """
    __tablename__ = "application_steps"
    __table_args__ = (
        # At most one open step per application
        Index(
            "ux_application_steps_open",
            "application_id",
            unique=True,
            postgresql_where=text("completed_at IS NULL"),
            sqlite_where=text("completed_at IS NULL"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id = Column(Uuid, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True)
    # Position within the application history, starting at 1
    sequence = Column(Integer, nullable=False, default=0)

    step_name = Column(String(50), nullable=False, index=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    assigned_to = Column(Uuid, nullable=True)
    sla_hours = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    application = relationship("Application", back_populates="steps")

    def __repr__(self) -> str:
        status = "open" if self.completed_at is None else "closed"
        return f"<ApplicationStep {self.step_name} #{self.sequence} [{status}]>"

    @property
    def deadline(self):
        """Timestamp by which the step must close; None for zero-hour stages."""
        if not self.sla_hours or self.started_at is None:
            return None
        return self.started_at + timedelta(hours=self.sla_hours)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "application_id": str(self.application_id),
            "step_name": self.step_name,
            "started_at": _iso_or_none(self.started_at),
            "completed_at": _iso_or_none(self.completed_at),
            "assigned_to": _str_or_none(self.assigned_to),
            "sla_hours": self.sla_hours,
            "notes": self.notes,
        }


def _iso_or_none(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_or_none(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)
