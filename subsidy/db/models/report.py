"""Technical and social assessment reports.

Report contents are captured elsewhere; the workflow only reads whether
each report has been approved.
"""

import uuid
from enum import Enum

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import declared_attr, relationship

from subsidy.db.base import Base, utcnow


class ReportStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"


class ReportMixin:
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    status = Column(String(20), nullable=False, default=ReportStatus.DRAFT.value)
    conclusion = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    @declared_attr
    def application_id(cls):
        return Column(
            Uuid,
            ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
            index=True,
        )

    @property
    def is_approved(self) -> bool:
        return self.status == ReportStatus.APPROVED.value

    def approve(self, user_id=None) -> None:
        self.status = ReportStatus.APPROVED.value
        self.approved_at = utcnow()
        self.approved_by = user_id

    def __repr__(self) -> str:
        return f"<{type(self).__name__} [{self.status}]>"


class TechnicalReport(ReportMixin, Base):
    __tablename__ = "technical_reports"

    application = relationship("Application", back_populates="technical_report")


class SocialReport(ReportMixin, Base):
    __tablename__ = "social_reports"

    application = relationship("Application", back_populates="social_report")
