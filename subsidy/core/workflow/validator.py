"""Transition validation.

Checks, in order:

1. Idempotence - requesting the current state is always accepted.
2. Graph - the edge must exist in the transition graph.
3. Preconditions - linked records must be complete for the target state.
4. Roles - the actor needs an exit role for the current state and an
   entry role for the target state.

Validation never mutates the application.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from subsidy.core.errors import AuthorizationError, InvalidTransitionError, PreconditionError
from subsidy.core.rbac.roles import Role, normalize_roles

from .states import (
    ENTRY_ROLES,
    EXIT_ROLES,
    STATE_REQUIREMENTS,
    State,
    can_transition,
    coerce_state,
    format_state_name,
    get_next_states,
)

logger = logging.getLogger(__name__)

TECHNICAL_REPORT_MISSING = "technical report missing/unapproved"
SOCIAL_REPORT_MISSING = "social report missing/unapproved"
APPROVED_AMOUNT_MISSING = "approved amount missing"
DIRECTOR_RECOMMENDATION_MISSING = "director recommendation missing"
APPROVED_AMOUNT_NOT_ALLOWED = "approved amount is only accepted when closing"


class TransitionValidator:
    """
    State-machine core for application transitions.

    Holds no per-application state; one instance can validate any number
    of applications concurrently.
    """

    def __init__(
        self,
        *,
        allow_reject_from_any_state: bool = True,
        require_director_recommendation: bool = False,
    ):
        self.allow_reject_from_any_state = allow_reject_from_any_state
        self.require_director_recommendation = require_director_recommendation

    def validate(
        self,
        application,
        target_state,
        actor_roles: Iterable,
        *,
        approved_amount: Any = None,
        notes: Optional[str] = None,
    ) -> None:
        """
        Validate a transition request.

        Args:
            application: Application being moved
            target_state: Requested state
            actor_roles: Roles held by the acting user
            approved_amount: Amount supplied with the request, if any
            notes: Notes supplied with the request, if any

        Raises:
            InvalidTransitionError: If the edge is not in the graph
            PreconditionError: If the target state's requirements are unmet
            AuthorizationError: If the actor's roles are insufficient
        """
        current = coerce_state(application.current_state)
        target = coerce_state(target_state)

        if current == target:
            return

        if not self.is_legal(current, target):
            raise InvalidTransitionError(current.value, target.value)

        missing = self.missing_requirements(
            application, target, approved_amount=approved_amount, notes=notes
        )
        if missing:
            raise PreconditionError(missing)

        self.authorize(current, target, actor_roles)

    def check(
        self,
        application,
        target_state,
        actor_roles: Iterable,
        *,
        approved_amount: Any = None,
        notes: Optional[str] = None,
    ) -> List[str]:
        """Dry run of ``validate``; returns every failure reason instead of raising."""
        current = coerce_state(application.current_state)
        target = coerce_state(target_state)
        if current == target:
            return []

        reasons = []
        if not self.is_legal(current, target):
            reasons.append(InvalidTransitionError(current.value, target.value).reason)
        reasons.extend(
            self.missing_requirements(application, target, approved_amount=approved_amount, notes=notes)
        )
        try:
            self.authorize(current, target, actor_roles)
        except AuthorizationError as e:
            reasons.append(e.reason)
        return reasons

    def is_legal(self, current: State, target: State) -> bool:
        return can_transition(
            current, target, allow_reject_from_any_state=self.allow_reject_from_any_state
        )

    def authorize(self, current: State, target: State, actor_roles: Iterable) -> None:
        """Raise ``AuthorizationError`` unless the actor may leave ``current`` and enter ``target``."""
        roles = normalize_roles(actor_roles)

        exit_roles = EXIT_ROLES[current]
        if not roles & exit_roles:
            raise AuthorizationError(
                f"Roles {_role_list(roles)} may not move an application out of {current.value}",
                exit_roles,
            )

        entry_roles = ENTRY_ROLES[target]
        if not roles & entry_roles:
            raise AuthorizationError(
                f"Roles {_role_list(roles)} may not move an application into {target.value}",
                entry_roles,
            )

    def missing_requirements(
        self,
        application,
        target: State,
        *,
        approved_amount: Any = None,
        notes: Optional[str] = None,
    ) -> List[str]:
        """List every unmet completeness requirement for entering ``target``."""
        missing = []

        # Only the move into CLOSURE may set the granted amount
        if approved_amount is not None and target != State.CLOSURE:
            missing.append(APPROVED_AMOUNT_NOT_ALLOWED)

        if target == State.DIRECTOR_REVIEW:
            if not _report_approved(getattr(application, "technical_report", None)):
                missing.append(TECHNICAL_REPORT_MISSING)
            if not _report_approved(getattr(application, "social_report", None)):
                missing.append(SOCIAL_REPORT_MISSING)

        elif target == State.MINISTER_DECISION:
            if self.require_director_recommendation and not (notes and notes.strip()):
                missing.append(DIRECTOR_RECOMMENDATION_MISSING)

        elif target == State.CLOSURE:
            amount = approved_amount if approved_amount is not None else application.approved_amount
            if amount is None:
                missing.append(APPROVED_AMOUNT_MISSING)

        return missing

    def available_transitions(self, application, actor_roles: Iterable) -> List[Dict[str, Any]]:
        """Targets the actor may request from the application's current state.

        Only the graph and the role gate are applied; preconditions are
        reported as ``requirements`` so a client can show what is still
        needed.
        """
        current = coerce_state(application.current_state)
        available = []
        for target in get_next_states(
            current, allow_reject_from_any_state=self.allow_reject_from_any_state
        ):
            try:
                self.authorize(current, target, actor_roles)
            except AuthorizationError:
                continue
            available.append({
                "state": target.value,
                "label": format_state_name(target),
                "requirements": list(STATE_REQUIREMENTS[target]),
            })
        return available


def _report_approved(report) -> bool:
    return report is not None and bool(getattr(report, "is_approved", False))


def _role_list(roles: Iterable[Role]) -> str:
    names = sorted(role.value for role in roles)
    return "[" + ", ".join(names) + "]" if names else "[none]"
