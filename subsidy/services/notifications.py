"""Notification dispatch for committed transitions.

Handles:
- Fire-and-forget submission of routed notification requests
- Hand-off to the Celery notification worker
- Logging of delivery failures without surfacing them to the caller
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Iterable, List, Optional

from subsidy.core.config import get_settings
from subsidy.core.errors import NotificationDispatchError
from subsidy.core.workflow.routing import NotificationRequest

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Delivers a single notification request. May raise ``NotificationDispatchError``."""

    @abstractmethod
    def dispatch(self, request: NotificationRequest) -> None:
        ...


class CeleryNotifier(Notifier):
    """Queues requests for the ``deliver_notification`` worker task.

    Retry and backoff are handled by the worker, not here.
    """

    def dispatch(self, request: NotificationRequest) -> None:
        from subsidy.workers.notification_tasks import deliver_notification

        try:
            deliver_notification.delay(request.to_payload())
        except Exception as e:
            raise NotificationDispatchError(
                f"Failed to queue notification for application {request.application_id}: {e}"
            ) from e


class NotificationDispatcher:
    """
    Post-commit hook that hands notification requests to a notifier.

    Submission returns immediately; delivery runs on a thread pool so that
    a slow or unavailable notifier never holds up the workflow.
    """

    def __init__(
        self,
        notifier: Notifier,
        *,
        executor: Optional[Executor] = None,
        max_workers: Optional[int] = None,
    ):
        self.notifier = notifier
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers or get_settings().notification_workers,
            thread_name_prefix="notify",
        )

    def submit(self, requests: Iterable[NotificationRequest]) -> List[Future]:
        """Queue every request for delivery and return without waiting."""
        futures = []
        for request in requests:
            try:
                futures.append(self._executor.submit(self._deliver, request))
            except RuntimeError:
                logger.exception(f"Notification executor unavailable, dropping request for {request.application_id}")
        return futures

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _deliver(self, request: NotificationRequest) -> None:
        recipient = request.recipient_role or request.recipient_user_id
        try:
            self.notifier.dispatch(request)
        except NotificationDispatchError as e:
            logger.warning(f"Notification to {recipient} failed: {e.reason}")
        except Exception:
            # Delivery must never affect the committed transition
            logger.exception(f"Notification to {recipient} failed")
        else:
            logger.debug(f"Notification '{request.title}' dispatched to {recipient}")
