"""Database models for the subsidy workflow."""

from subsidy.db.models.application import Application, ApplicationStep
from subsidy.db.models.task import Task, TaskStatus
from subsidy.db.models.audit import AuditLog
from subsidy.db.models.report import TechnicalReport, SocialReport, ReportStatus
from subsidy.db.models.user_role import UserRole
from subsidy.db.models.notification import Notification

__all__ = [
    "Application",
    "ApplicationStep",
    "Task",
    "TaskStatus",
    "AuditLog",
    "TechnicalReport",
    "SocialReport",
    "ReportStatus",
    "UserRole",
    "Notification",
]
