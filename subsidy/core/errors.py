"""Workflow error hierarchy.

Every error carries a stable ``kind`` string, a human-readable ``reason``
and a ``retryable`` flag so callers can map it onto whatever transport
they expose.
"""

from typing import Any, Dict, Iterable, List, Optional


class WorkflowError(Exception):
    """Base class for workflow failures."""

    kind = "workflow_error"
    retryable = False

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "reason": self.reason,
            "retryable": self.retryable,
        }


class NotFoundError(WorkflowError):
    """Raised when a referenced application or task does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(WorkflowError):
    """Raised when the requested edge is not in the transition graph."""

    kind = "invalid_transition"

    def __init__(self, from_state: str, to_state: str):
        super().__init__(f"Transition from {from_state} to {to_state} is not allowed")
        self.from_state = from_state
        self.to_state = to_state


class AuthorizationError(WorkflowError):
    """Raised when none of the actor's roles may perform the transition."""

    kind = "authorization"

    def __init__(self, reason: str, required_roles: Iterable[str] = ()):
        super().__init__(reason)
        self.required_roles = sorted(str(getattr(r, "value", r)) for r in required_roles)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["required_roles"] = self.required_roles
        return data


class PreconditionError(WorkflowError):
    """Raised when the target state's completeness requirements are unmet.

    ``missing`` lists every unmet requirement, not just the first one found.
    """

    kind = "precondition"

    def __init__(self, missing: List[str]):
        super().__init__("; ".join(missing))
        self.missing = list(missing)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["missing"] = self.missing
        return data


class ConcurrencyConflict(WorkflowError):
    """Raised when another writer changed the application first."""

    kind = "concurrency_conflict"
    retryable = True

    def __init__(self, application_id: Any, expected_version: Optional[int] = None):
        if expected_version is None:
            reason = f"Application {application_id} was modified concurrently"
        else:
            reason = (
                f"Application {application_id} was modified concurrently "
                f"(expected version {expected_version})"
            )
        super().__init__(reason)
        self.application_id = application_id
        self.expected_version = expected_version


class PersistenceError(WorkflowError):
    """Raised when the commit fails; nothing from the transition was written."""

    kind = "persistence"
    retryable = True


class TransitionTimeoutError(PersistenceError):
    """Raised when persistence exceeds the configured time bound."""

    kind = "timeout"
    retryable = False


class NotificationDispatchError(WorkflowError):
    """Raised by notifiers. Logged by the dispatcher, never surfaced to callers."""

    kind = "notification_dispatch"
    retryable = True


class WorkflowConfigurationError(WorkflowError):
    """Raised at import time when a workflow table does not cover every state."""

    kind = "configuration"
