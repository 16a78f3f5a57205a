"""Celery tasks for notification delivery.

Provides async task processing for:
- Resolving role recipients to users
- Writing in-app notification rows
- Optional webhook delivery with retry and exponential backoff
"""

from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

import httpx
from celery import Celery, shared_task
from sqlalchemy.orm import Session

from subsidy.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery(
    'subsidy',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'subsidy.workers.notification_tasks.deliver_notification': {'queue': 'notifications'},
    },
    task_default_queue='default',
)


def resolve_recipients(db: Session, payload: Dict[str, Any]) -> List[UUID]:
    """User IDs a notification payload is addressed to."""
    from subsidy.db.models import UserRole

    if payload.get("recipient_user_id"):
        return [UUID(payload["recipient_user_id"])]

    role = payload.get("recipient_role")
    if not role:
        return []
    rows = db.query(UserRole.user_id).filter(UserRole.role == role).distinct().all()
    return [row[0] for row in rows]


def store_notifications(db: Session, payload: Dict[str, Any]) -> int:
    """Write one in-app notification per recipient; returns the number written."""
    from subsidy.db.models import Notification

    recipients = resolve_recipients(db, payload)
    application_id = payload.get("application_id")
    for user_id in recipients:
        db.add(Notification(
            user_id=user_id,
            application_id=UUID(application_id) if application_id else None,
            title=payload["title"],
            message=payload["message"],
            category=payload.get("category") or "APPLICATION",
        ))
    db.commit()
    return len(recipients)


def post_webhook(payload: Dict[str, Any], url: Optional[str] = None) -> None:
    """POST the payload to the configured webhook; raises ``httpx.HTTPError`` on failure."""
    url = url or settings.notification_webhook_url
    if not url:
        return
    with httpx.Client(timeout=settings.notification_timeout) as client:
        response = client.post(
            url,
            json={"event": "workflow.notification", "data": payload},
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()


def retry_countdown(retries: int) -> int:
    """Seconds to wait before retry number ``retries + 1``."""
    return settings.notification_retry_backoff * (2 ** retries)


@shared_task(bind=True, max_retries=settings.notification_max_retries)
def deliver_notification(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Async task to deliver one routed notification request.

    Args:
        payload: ``NotificationRequest.to_payload()`` output

    Returns:
        Delivery summary
    """
    from subsidy.db.session import SessionLocal

    db = SessionLocal()
    try:
        # Rows were already written on the first attempt; retries only redo the webhook
        stored = store_notifications(db, payload) if self.request.retries == 0 else 0
        post_webhook(payload)
        logger.info(
            f"Delivered '{payload.get('title')}' for application {payload.get('application_id')} "
            f"to {stored} recipient(s)"
        )
        return {"stored": stored, "application_id": payload.get("application_id")}

    except httpx.HTTPError as e:
        logger.warning(f"Webhook delivery failed for {payload.get('application_id')}: {e}")
        raise self.retry(exc=e, countdown=retry_countdown(self.request.retries))

    finally:
        db.close()
