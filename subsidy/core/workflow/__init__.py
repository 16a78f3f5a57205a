"""Application workflow engine.

Implements the subsidy application state machine: transition validation,
the stage step ledger, SLA deadlines, audit recording and notification
routing, composed by ``WorkflowService``.
"""

from .states import State, TransitionRule, VALID_TRANSITIONS, TERMINAL_STATES
from subsidy.core.errors import (
    WorkflowError,
    NotFoundError,
    InvalidTransitionError,
    AuthorizationError,
    PreconditionError,
    ConcurrencyConflict,
    PersistenceError,
    TransitionTimeoutError,
    NotificationDispatchError,
    WorkflowConfigurationError,
)
from .validator import TransitionValidator
from .ledger import StepLedger
from .routing import NotificationRequest, NotificationRouter, route_task_notification, route_task_reminders
from .service import WorkflowService, TransitionResult

__all__ = [
    "State",
    "TransitionRule",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "WorkflowError",
    "NotFoundError",
    "InvalidTransitionError",
    "AuthorizationError",
    "PreconditionError",
    "ConcurrencyConflict",
    "PersistenceError",
    "TransitionTimeoutError",
    "NotificationDispatchError",
    "WorkflowConfigurationError",
    "TransitionValidator",
    "StepLedger",
    "NotificationRequest",
    "NotificationRouter",
    "route_task_notification",
    "route_task_reminders",
    "WorkflowService",
    "TransitionResult",
]
