"""Workflow orchestrator for housing subsidy applications.

Provides the single entry point that moves an application between
stages, plus the read-side queries built on the same components.
"""

import logging
import secrets
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union
from uuid import UUID

from sqlalchemy.orm import Session

from subsidy.core.config import Settings, get_settings
from subsidy.core.errors import ConcurrencyConflict, InvalidTransitionError, NotFoundError, WorkflowError
from subsidy.core.rbac.provider import RoleProvider
from subsidy.core.rbac.roles import Role, normalize_roles
from subsidy.db.base import utcnow
from subsidy.db.models import Application, ApplicationStep, AuditLog, Task, TaskStatus
from subsidy.db.store import PersistenceStore, SqlAlchemyStore

from .audit import AuditRecorder
from .ledger import StepLedger
from .routing import (
    TASK_ASSIGNMENT,
    NotificationRequest,
    NotificationRouter,
    route_task_notification,
    route_task_reminders,
)
from .sla import deadline_for
from .states import INITIAL_STATE, TERMINAL_STATES, State, coerce_state, validate_tables
from .tasks import build_stage_task
from .validator import TransitionValidator

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Outcome of a ``transition`` call."""
    application: Application
    from_state: State
    to_state: State
    changed: bool
    step: Optional[ApplicationStep] = None
    task: Optional[Task] = None
    audit_entry: Optional[AuditLog] = None
    notifications: List[NotificationRequest] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": (
                "State transition completed successfully" if self.changed
                else f"Application already in {self.to_state.value}"
            ),
            "changed": self.changed,
            "from_state": self.from_state.value,
            "application": application_to_dict(self.application),
            "notifications": [n.to_payload() for n in self.notifications],
        }


class WorkflowService:
    """
    Root facade of the application workflow.

    Each ``transition`` call loads the application, validates the request,
    then updates the application, moves the step ledger, writes auto tasks
    and the audit entry in one commit. Notifications are routed and handed
    to the dispatcher only after that commit succeeds.
    """

    def __init__(
        self,
        db: Session,
        *,
        store: Optional[PersistenceStore] = None,
        role_provider: Optional[RoleProvider] = None,
        dispatcher=None,
        router: Optional[NotificationRouter] = None,
        validator: Optional[TransitionValidator] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the workflow service.

        Args:
            db: Database session
            store: Persistence store (defaults to one wrapping ``db``)
            role_provider: Resolves actor roles when a call does not pass them
            dispatcher: Post-commit notification hook (``NotificationDispatcher``)
            router: Notification router
            validator: Transition validator (defaults to one built from settings)
            settings: Application settings
            clock: Source of "now", as naive UTC
        """
        validate_tables()

        self.db = db
        self.settings = settings or get_settings()
        self.store = store or SqlAlchemyStore(db)
        self.role_provider = role_provider
        self.dispatcher = dispatcher
        self.router = router or NotificationRouter()
        self.validator = validator or TransitionValidator(
            allow_reject_from_any_state=self.settings.allow_reject_from_any_state,
            require_director_recommendation=self.settings.require_director_recommendation,
        )
        self.clock = clock
        self.ledger = StepLedger(
            self.store, clock=clock, default_sla_hours=self.settings.default_sla_hours
        )
        self.audit = AuditRecorder(self.store)

    # -- intake -------------------------------------------------------------

    def create_application(
        self,
        *,
        actor_id: Optional[UUID] = None,
        application_number: Optional[str] = None,
        applicant_name: Optional[str] = None,
        requested_amount: Optional[Decimal] = None,
        priority_level: int = 3,
        assigned_to: Optional[UUID] = None,
    ) -> Application:
        """
        Create an application in DRAFT with its first step.

        Returns:
            The committed application
        """
        if not 1 <= priority_level <= 5:
            raise ValueError(f"priority_level must be between 1 and 5, got {priority_level}")

        now = self.clock()
        application = Application(
            application_number=application_number or generate_application_number(now),
            applicant_name=applicant_name,
            current_state=INITIAL_STATE.value,
            priority_level=priority_level,
            requested_amount=requested_amount,
            assigned_to=assigned_to,
            created_at=now,
            updated_at=now,
            sla_deadline=deadline_for(INITIAL_STATE, now, self.settings.default_sla_hours),
        )

        with self.store.atomic(application.application_number, self.settings.transition_timeout_seconds):
            self.store.add_application(application)
            self.ledger.open_step(application.id, INITIAL_STATE, assigned_to, started_at=now)
            self.audit.record(
                "INSERT", "applications", application.id,
                None, application.to_snapshot(), actor_id,
            )

        logger.info(f"Created application {application.application_number} in {INITIAL_STATE.value}")
        return application

    def get_application(self, application_id: UUID) -> Application:
        application = self.store.get_application(application_id)
        if application is None:
            raise NotFoundError("Application", application_id)
        return application

    # -- transitions --------------------------------------------------------

    def transition(
        self,
        application_id: UUID,
        target_state: Union[State, str],
        *,
        actor_id: Optional[UUID] = None,
        actor_roles: Optional[Iterable] = None,
        notes: Optional[str] = None,
        assign_to: Optional[UUID] = None,
        approved_amount: Optional[Decimal] = None,
        expected_version: Optional[int] = None,
        retry_on_conflict: bool = False,
    ) -> TransitionResult:
        """
        Move an application to ``target_state``.

        Args:
            application_id: Application to move
            target_state: Requested state
            actor_id: User performing the transition
            actor_roles: Actor's roles; looked up through the role provider if omitted
            notes: Notes attached to the step being closed
            assign_to: New assignee, kept from the application if omitted
            approved_amount: Amount granted; accepted only when entering CLOSURE
            expected_version: Version the caller last saw; a mismatch is a conflict
            retry_on_conflict: Refetch and retry once on ``ConcurrencyConflict``

        Returns:
            TransitionResult with the updated application and dispatched notifications

        Raises:
            NotFoundError: If the application does not exist
            InvalidTransitionError: If the edge is not in the graph
            PreconditionError: If the target state's requirements are unmet
            AuthorizationError: If the actor's roles are insufficient
            ConcurrencyConflict: If another writer changed the application first
            PersistenceError: If the commit failed
        """
        roles = self._resolve_roles(actor_id, actor_roles)
        kwargs = dict(
            actor_id=actor_id,
            roles=roles,
            notes=notes,
            assign_to=assign_to,
            approved_amount=approved_amount,
            expected_version=expected_version,
        )
        try:
            result = self._transition_once(application_id, target_state, **kwargs)
        except ConcurrencyConflict:
            # A caller-supplied version cannot match on a refetch either
            if not retry_on_conflict or expected_version is not None:
                raise
            logger.info(f"Retrying transition of {application_id} after concurrency conflict")
            result = self._transition_once(application_id, target_state, **kwargs)

        if result.changed:
            self._dispatch(result.notifications)
        return result

    def _transition_once(
        self,
        application_id: UUID,
        target_state,
        *,
        actor_id: Optional[UUID],
        roles: Set[Role],
        notes: Optional[str],
        assign_to: Optional[UUID],
        approved_amount: Optional[Decimal],
        expected_version: Optional[int],
    ) -> TransitionResult:
        with self.store.atomic(application_id, self.settings.transition_timeout_seconds):
            application = self.store.get_application(application_id, for_update=True)
            if application is None:
                raise NotFoundError("Application", application_id)

            if expected_version is not None and application.version != expected_version:
                raise ConcurrencyConflict(application_id, expected_version)

            current = coerce_state(application.current_state)
            target = self._coerce_target(current, target_state)

            if current == target:
                logger.debug(f"Application {application_id} already in {target.value}, nothing to do")
                return TransitionResult(application, current, target, changed=False)

            self.validator.validate(
                application, target, roles,
                approved_amount=approved_amount, notes=notes,
            )

            old_values = application.to_snapshot()
            self.ledger.recover(application)

            now = self.clock()
            self._apply_state(application, current, target, now, assign_to, approved_amount)
            self.store.save_application(application, expected_version)

            step = self.ledger.advance(
                application, target,
                assigned_to=application.assigned_to, notes=notes, at=now,
            )

            task = build_stage_task(
                application.id, target,
                assigned_to=application.assigned_to, due_date=application.sla_deadline,
            )
            if task is not None:
                task.assigned_by = actor_id
                self.store.add_task(task)

            new_values = application.to_snapshot()
            new_values["notes"] = notes
            audit_entry = self.audit.record(
                "UPDATE", "applications", application.id,
                old_values, new_values, actor_id,
            )

        logger.info(
            f"Application {application.application_number}: {current.value} -> {target.value} "
            f"by {actor_id}"
        )
        notifications = self.router.route(current, target, application)
        return TransitionResult(
            application, current, target,
            changed=True, step=step, task=task,
            audit_entry=audit_entry, notifications=notifications,
        )

    def _apply_state(
        self,
        application: Application,
        current: State,
        target: State,
        now: datetime,
        assign_to: Optional[UUID],
        approved_amount: Optional[Decimal],
    ) -> None:
        application.current_state = target.value
        application.updated_at = now
        if assign_to is not None:
            application.assigned_to = assign_to
        if approved_amount is not None and target == State.CLOSURE:
            application.approved_amount = approved_amount
        if current == State.DRAFT and application.submitted_at is None:
            application.submitted_at = now

        if target in TERMINAL_STATES:
            application.completed_at = now
            application.sla_deadline = None
        else:
            application.completed_at = None
            application.sla_deadline = deadline_for(target, now, self.settings.default_sla_hours)

    def _coerce_target(self, current: State, target_state) -> State:
        try:
            return coerce_state(target_state)
        except ValueError:
            raise InvalidTransitionError(current.value, str(target_state))

    def _resolve_roles(self, actor_id: Optional[UUID], actor_roles: Optional[Iterable]) -> Set[Role]:
        if actor_roles is not None:
            return normalize_roles(actor_roles)
        if self.role_provider is None or actor_id is None:
            return set()
        return self.role_provider.roles_of(actor_id)

    def _dispatch(self, notifications: List[NotificationRequest]) -> None:
        if not notifications:
            return
        if self.dispatcher is None:
            logger.debug(f"No notification dispatcher configured, dropping {len(notifications)} request(s)")
            return
        try:
            self.dispatcher.submit(notifications)
        except Exception:
            logger.exception("Failed to submit notifications")

    def execute(self, request, actor_id: Optional[UUID] = None, actor_roles: Optional[Iterable] = None):
        """
        Handle an inbound ``TransitionRequest``.

        Returns:
            ``TransitionResponse`` on success, ``ErrorResponse`` on any workflow error
        """
        from subsidy.schemas.workflow import (
            ApplicationResponse, ErrorResponse, NotificationResponse, TransitionResponse,
        )

        try:
            result = self.transition(
                request.application_id,
                request.target_state,
                actor_id=actor_id,
                actor_roles=actor_roles,
                notes=request.notes,
                assign_to=request.assigned_to,
                approved_amount=request.approved_amount,
                expected_version=request.expected_version,
            )
        except WorkflowError as e:
            data = e.to_dict()
            return ErrorResponse(
                kind=data.pop("kind"),
                reason=data.pop("reason"),
                retryable=data.pop("retryable"),
                details=data,
            )
        payload = result.to_dict()
        return TransitionResponse(
            message=payload["message"],
            changed=result.changed,
            from_state=result.from_state,
            application=ApplicationResponse.model_validate(result.application),
            notifications=[NotificationResponse(**asdict(n)) for n in result.notifications],
        )

    # -- queries ------------------------------------------------------------

    def validate_transition(
        self,
        application_id: UUID,
        target_state: Union[State, str],
        *,
        actor_id: Optional[UUID] = None,
        actor_roles: Optional[Iterable] = None,
        approved_amount: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Dry run of ``transition``: every reason it would fail, without writing."""
        application = self.get_application(application_id)
        roles = self._resolve_roles(actor_id, actor_roles)
        try:
            target = coerce_state(target_state)
        except ValueError:
            reason = InvalidTransitionError(application.current_state, str(target_state)).reason
            return {"valid": False, "reasons": [reason]}

        reasons = self.validator.check(
            application, target, roles, approved_amount=approved_amount, notes=notes
        )
        return {"valid": not reasons, "reasons": reasons}

    def available_transitions(
        self,
        application_id: UUID,
        *,
        actor_id: Optional[UUID] = None,
        actor_roles: Optional[Iterable] = None,
    ) -> Dict[str, Any]:
        application = self.get_application(application_id)
        roles = self._resolve_roles(actor_id, actor_roles)
        return {
            "current_state": application.current_state,
            "available_transitions": self.validator.available_transitions(application, roles),
        }

    def workflow_status(self, application_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Current state, step history, progress and SLA standing of an application."""
        application = self.get_application(application_id)
        now = now or self.clock()
        active = self.ledger.active_step(application)
        time_in_stage = self.ledger.time_in_current_stage(application, now)

        return {
            "application_id": str(application.id),
            "current_state": application.current_state,
            **self.ledger.progress(application.id),
            "active_step": active.to_dict() if active else None,
            "time_in_stage_hours": (
                round(time_in_stage.total_seconds() / 3600, 2) if time_in_stage is not None else None
            ),
            "is_overdue": self.ledger.is_overdue(application, now),
            "sla_deadline": application.sla_deadline.isoformat() if application.sla_deadline else None,
            "workflow_history": [step.to_dict() for step in self.ledger.history(application.id)],
        }

    def overdue_steps(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Active steps past their SLA deadline, oldest first."""
        now = now or self.clock()
        results = []
        for step in self.ledger.overdue_steps(now):
            data = step.to_dict()
            data["deadline"] = step.deadline.isoformat()
            data["hours_overdue"] = round((now - step.deadline).total_seconds() / 3600, 2)
            results.append(data)
        return results

    # -- tasks --------------------------------------------------------------

    def create_task(
        self,
        application_id: UUID,
        title: str,
        *,
        actor_id: Optional[UUID] = None,
        task_type: str = "MANUAL",
        description: Optional[str] = None,
        assigned_to: Optional[UUID] = None,
        priority: int = 3,
        due_date: Optional[datetime] = None,
    ) -> Task:
        """Create a hand-made task on an application; its assignee is notified after commit."""
        self.get_application(application_id)
        task = Task(
            application_id=application_id,
            task_type=task_type,
            title=title,
            description=description,
            assigned_to=assigned_to,
            assigned_by=actor_id,
            priority=priority,
            due_date=due_date,
            auto_generated=False,
            status=TaskStatus.PENDING.value,
            created_at=self.clock(),
        )
        with self.store.atomic(application_id, self.settings.transition_timeout_seconds):
            self.store.add_task(task)
            self.audit.record("INSERT", "tasks", task.id, None, task.to_dict(), actor_id)

        assignment = route_task_notification(task, TASK_ASSIGNMENT)
        if assignment is not None:
            self._dispatch([assignment])
        return task

    def list_tasks(
        self,
        *,
        application_id: Optional[UUID] = None,
        assigned_to: Optional[UUID] = None,
        status: Optional[Union[TaskStatus, str]] = None,
    ) -> List[Task]:
        """Tasks matching every given filter, newest first."""
        if isinstance(status, TaskStatus):
            status = status.value
        return self.store.list_tasks(
            application_id=application_id, assigned_to=assigned_to, status=status
        )

    def complete_task(
        self,
        task_id: UUID,
        *,
        actor_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> Task:
        """Mark a task completed, appending any completion notes to its description."""
        with self.store.atomic(task_id, self.settings.transition_timeout_seconds):
            task = self.store.get_task(task_id, for_update=True)
            if task is None:
                raise NotFoundError("Task", task_id)

            old_values = task.to_dict()
            task.status = TaskStatus.COMPLETED.value
            task.completed_at = self.clock()
            if notes:
                task.description = (
                    f"{task.description}\n\nCompletion Notes: {notes}" if task.description
                    else f"Completion Notes: {notes}"
                )
            self.db.flush()
            self.audit.record("UPDATE", "tasks", task.id, old_values, task.to_dict(), actor_id)
        return task

    def send_task_reminders(self, now: Optional[datetime] = None) -> List[NotificationRequest]:
        """
        Remind assignees of pending tasks that are due soon or overdue.

        Meant to be run periodically. Each call re-sends reminders for every
        task still in the window.

        Returns:
            The notification requests handed to the dispatcher
        """
        now = now or self.clock()
        window = timedelta(hours=self.settings.task_reminder_window_hours)
        tasks = self.store.due_tasks(now + window)
        notifications = route_task_reminders(tasks, now, window)
        self._dispatch(notifications)
        logger.info(f"Sent {len(notifications)} task reminder(s) for {len(tasks)} due task(s)")
        return notifications


def generate_application_number(now: Optional[datetime] = None) -> str:
    """``SUB-<yyyymmdd>-<6 hex>``, e.g. ``SUB-20260301-4F1A2B``."""
    now = now or utcnow()
    return f"SUB-{now:%Y%m%d}-{secrets.token_hex(3)}".upper()


def application_to_dict(application: Application) -> Dict[str, Any]:
    """Convert an Application model to dictionary."""
    return {
        "id": str(application.id),
        "application_number": application.application_number,
        "applicant_name": application.applicant_name,
        "current_state": application.current_state,
        "priority_level": application.priority_level,
        "requested_amount": str(application.requested_amount) if application.requested_amount is not None else None,
        "approved_amount": str(application.approved_amount) if application.approved_amount is not None else None,
        "assigned_to": str(application.assigned_to) if application.assigned_to else None,
        "created_at": application.created_at.isoformat() if application.created_at else None,
        "submitted_at": application.submitted_at.isoformat() if application.submitted_at else None,
        "completed_at": application.completed_at.isoformat() if application.completed_at else None,
        "sla_deadline": application.sla_deadline.isoformat() if application.sla_deadline else None,
        "version": application.version,
    }
