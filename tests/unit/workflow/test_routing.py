"""Tests for notification routing."""

import uuid
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from subsidy.core.workflow.routing import (
    NotificationRequest,
    NotificationRouter,
    route_task_notification,
    route_task_reminders,
)
from subsidy.core.workflow.states import State


def make_application(assigned_to=None, applicant_name="Maria Gomez"):
    return SimpleNamespace(
        id=uuid.uuid4(),
        application_number="SUB-20260302-ABC123",
        applicant_name=applicant_name,
        assigned_to=assigned_to,
    )


class TestNotificationRequest:

    def test_requires_exactly_one_recipient(self):
        with pytest.raises(ValueError):
            NotificationRequest(title="t", message="m", application_id=uuid.uuid4())
        with pytest.raises(ValueError):
            NotificationRequest(
                title="t", message="m", application_id=uuid.uuid4(),
                recipient_role="director", recipient_user_id=uuid.uuid4(),
            )

    def test_payload_is_json_safe(self):
        app_id, user_id = uuid.uuid4(), uuid.uuid4()
        request = NotificationRequest(
            title="t", message="m", application_id=app_id, recipient_user_id=user_id,
        )
        assert request.to_payload() == {
            "title": "t",
            "message": "m",
            "application_id": str(app_id),
            "recipient_role": None,
            "recipient_user_id": str(user_id),
            "category": "APPLICATION",
        }


class TestNotificationRouter:

    def setup_method(self):
        self.router = NotificationRouter()

    def test_role_notification_on_director_review(self):
        app = make_application()
        requests = self.router.route(State.SOCIAL_REVIEW, State.DIRECTOR_REVIEW, app)

        assert len(requests) == 1
        request = requests[0]
        assert request.recipient_role == "director"
        assert request.recipient_user_id is None
        assert request.application_id == app.id
        assert request.title == "New Application Assignment"
        assert request.message == (
            "Application SUB-20260302-ABC123 (Maria Gomez) is now ready for Director Review"
        )

    def test_assignee_notified_before_role(self):
        assignee = uuid.uuid4()
        app = make_application(assigned_to=assignee)
        requests = self.router.route(State.INTAKE_REVIEW, State.CONTROL_ASSIGN, app)

        assert [r.recipient_user_id for r in requests] == [assignee, None]
        assert [r.recipient_role for r in requests] == [None, "control"]
        assert requests[0].title == "Application Assignment"

    def test_states_without_role_only_notify_assignee(self):
        assignee = uuid.uuid4()
        requests = self.router.route(State.DRAFT, State.INTAKE_REVIEW, make_application(assigned_to=assignee))
        assert len(requests) == 1
        assert requests[0].recipient_user_id == assignee

        assert self.router.route(State.MINISTER_DECISION, State.CLOSURE, make_application()) == []

    @pytest.mark.parametrize("target,role", [
        (State.CONTROL_ASSIGN, "control"),
        (State.TECHNICAL_REVIEW, "staff"),
        (State.SOCIAL_REVIEW, "staff"),
        (State.DIRECTOR_REVIEW, "director"),
        (State.MINISTER_DECISION, "minister"),
    ])
    def test_role_map(self, target, role):
        requests = self.router.route(State.DRAFT, target, make_application())
        assert [r.recipient_role for r in requests] == [role]

    def test_routing_is_deterministic(self):
        app = make_application(assigned_to=uuid.uuid4())
        first = self.router.route(State.SOCIAL_REVIEW, State.DIRECTOR_REVIEW, app)
        second = self.router.route(State.SOCIAL_REVIEW, State.DIRECTOR_REVIEW, app)
        assert first == second

    def test_label_without_applicant_name(self):
        app = make_application(applicant_name=None)
        requests = self.router.route(State.CONTROL_IN_PROGRESS, State.TECHNICAL_REVIEW, app)
        assert requests[0].message == "Application SUB-20260302-ABC123 is now ready for Technical Review"


NOW = datetime(2026, 3, 2, 9, 0)


def make_task(due_in=None, assigned_to="default", status="PENDING", title="Schedule site visit"):
    return SimpleNamespace(
        id=uuid.uuid4(),
        application_id=uuid.uuid4(),
        application=make_application(),
        title=title,
        status=status,
        assigned_to=uuid.uuid4() if assigned_to == "default" else assigned_to,
        due_date=NOW + due_in if due_in is not None else None,
    )


class TestTaskNotifications:

    def test_assignment_goes_to_assignee(self):
        task = make_task()
        request = route_task_notification(task, "assignment")

        assert request.recipient_user_id == task.assigned_to
        assert request.application_id == task.application_id
        assert request.category == "TASK"
        assert request.title == "Task Assignment"
        assert request.message == (
            "You have been assigned a new task: Schedule site visit for application SUB-20260302-ABC123"
        )

    def test_unassigned_task_has_no_recipient(self):
        assert route_task_notification(make_task(assigned_to=None), "assignment") is None

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            route_task_notification(make_task(), "escalation")


class TestTaskReminders:

    def test_due_soon_gets_reminder(self):
        task = make_task(due_in=timedelta(hours=6))
        [request] = route_task_reminders([task], NOW)

        assert request.title == "Task Reminder"
        assert request.message == (
            'Reminder: Task "Schedule site visit" for application SUB-20260302-ABC123 is due soon'
        )
        assert request.recipient_user_id == task.assigned_to

    def test_past_due_gets_overdue_notice(self):
        [request] = route_task_reminders([make_task(due_in=timedelta(hours=-2))], NOW)

        assert request.title == "Task Overdue"
        assert request.message.startswith("OVERDUE: Task")

    def test_outside_window_is_skipped(self):
        tasks = [make_task(due_in=timedelta(hours=24)), make_task(due_in=timedelta(days=3))]
        assert route_task_reminders(tasks, NOW) == []

    def test_window_is_configurable(self):
        task = make_task(due_in=timedelta(hours=30))
        assert len(route_task_reminders([task], NOW, window=timedelta(hours=48))) == 1

    def test_unassigned_completed_and_undated_are_skipped(self):
        tasks = [
            make_task(due_in=timedelta(hours=1), assigned_to=None),
            make_task(due_in=timedelta(hours=1), status="COMPLETED"),
            make_task(due_in=None),
        ]
        assert route_task_reminders(tasks, NOW) == []
