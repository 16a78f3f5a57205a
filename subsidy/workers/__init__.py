"""Celery workers for the subsidy workflow."""

from subsidy.workers.notification_tasks import (
    celery_app,
    deliver_notification,
)

__all__ = [
    "celery_app",
    "deliver_notification",
]
