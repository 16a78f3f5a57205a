"""Maps committed transitions to outbound notification requests.

Routing is pure: it reads the application or task and the policy tables
and returns requests. Delivery belongs to the notifier.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from subsidy.db.models import TaskStatus

from .states import NOTIFY_ROLES, coerce_state, format_state_name

CATEGORY_APPLICATION = "APPLICATION"
CATEGORY_TASK = "TASK"


@dataclass(frozen=True)
class NotificationRequest:
    """One notification to deliver, addressed to a role or to a single user."""

    title: str
    message: str
    application_id: UUID
    recipient_role: Optional[str] = None
    recipient_user_id: Optional[UUID] = None
    category: str = CATEGORY_APPLICATION

    def __post_init__(self):
        if (self.recipient_role is None) == (self.recipient_user_id is None):
            raise ValueError("A notification needs exactly one of recipient_role or recipient_user_id")

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe form, as handed to the notification worker."""
        payload = asdict(self)
        payload["application_id"] = str(self.application_id)
        if self.recipient_user_id is not None:
            payload["recipient_user_id"] = str(self.recipient_user_id)
        return payload


class NotificationRouter:
    """Decides who hears about a transition."""

    def route(self, from_state, to_state, application) -> List[NotificationRequest]:
        """
        Build the notification requests for a committed transition.

        Args:
            from_state: State before the transition
            to_state: State after the transition
            application: The updated application

        Returns:
            The assignee's direct request (if anyone is assigned) followed
            by the role request for ``to_state`` (if the state has one)
        """
        target = coerce_state(to_state)
        stage = format_state_name(target)
        label = _application_label(application)
        requests = []

        if application.assigned_to is not None:
            requests.append(NotificationRequest(
                title="Application Assignment",
                message=f"Application {label} has been assigned to you for {stage}",
                application_id=application.id,
                recipient_user_id=application.assigned_to,
            ))

        role = NOTIFY_ROLES[target]
        if role is not None:
            requests.append(NotificationRequest(
                title="New Application Assignment",
                message=f"Application {label} is now ready for {stage}",
                application_id=application.id,
                recipient_role=role.value,
            ))

        return requests


def _application_label(application) -> str:
    name = getattr(application, "applicant_name", None)
    if name:
        return f"{application.application_number} ({name})"
    return application.application_number


# -- task notifications -------------------------------------------------------

TASK_ASSIGNMENT = "assignment"
TASK_REMINDER = "reminder"
TASK_OVERDUE = "overdue"

_TASK_MESSAGES = {
    TASK_ASSIGNMENT: "You have been assigned a new task: {title} for application {number}",
    TASK_REMINDER: 'Reminder: Task "{title}" for application {number} is due soon',
    TASK_OVERDUE: 'OVERDUE: Task "{title}" for application {number} is past due date',
}


def route_task_notification(task, kind: str) -> Optional[NotificationRequest]:
    """
    Build one task notification for the task's assignee.

    Args:
        task: Task to notify about
        kind: ``assignment``, ``reminder`` or ``overdue``

    Returns:
        The request, or None when nobody is assigned
    """
    if kind not in _TASK_MESSAGES:
        raise ValueError(f"Unknown task notification kind: {kind}")
    if task.assigned_to is None:
        return None

    application = getattr(task, "application", None)
    number = application.application_number if application is not None else str(task.application_id)
    return NotificationRequest(
        title=f"Task {kind.capitalize()}",
        message=_TASK_MESSAGES[kind].format(title=task.title, number=number),
        application_id=task.application_id,
        recipient_user_id=task.assigned_to,
        category=CATEGORY_TASK,
    )


def route_task_reminders(
    tasks: Iterable,
    now: datetime,
    window: timedelta = timedelta(hours=24),
) -> List[NotificationRequest]:
    """
    Reminders for pending, assigned tasks due within ``window`` of ``now``.

    Tasks already past their due date get an ``overdue`` notice instead.
    """
    requests = []
    for task in tasks:
        if task.status != TaskStatus.PENDING.value or task.due_date is None:
            continue
        if task.due_date >= now + window:
            continue
        kind = TASK_OVERDUE if task.due_date < now else TASK_REMINDER
        request = route_task_notification(task, kind)
        if request is not None:
            requests.append(request)
    return requests
