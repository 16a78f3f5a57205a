"""Application workflow states, transitions and policy tables.

State Machine Diagram:

    ┌───────┐     ┌───────────────┐     ┌────────────────┐
    │ DRAFT │────►│ INTAKE_REVIEW │────►│ CONTROL_ASSIGN │
    └───────┘     └───────────────┘     └───────┬────────┘
                                                │
                  ┌─────────────────────────┐   │
                  │ CONTROL_VISIT_SCHEDULED │◄──┘
                  └────────────┬────────────┘
                               │
                  ┌────────────▼────────┐
                  │ CONTROL_IN_PROGRESS │
                  └──────┬───────┬──────┘
                         │       │
         ┌───────────────▼──┐ ┌──▼────────────┐
         │ TECHNICAL_REVIEW │◄►│ SOCIAL_REVIEW │
         └───────────────┬──┘ └──┬────────────┘
                         │       │
                  ┌──────▼───────▼──┐     ┌───────────────────┐     ┌─────────┐
                  │ DIRECTOR_REVIEW │────►│ MINISTER_DECISION │────►│ CLOSURE │
                  └─────────────────┘     └───────────────────┘     └─────────┘

    REJECTED is reachable from every non-terminal state (configurable).
    CLOSURE and REJECTED are terminal.

Every table below must cover every state; ``validate_tables`` runs at
import time and raises ``WorkflowConfigurationError`` otherwise.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Set

from subsidy.core.errors import WorkflowConfigurationError
from subsidy.core.rbac.roles import Role, WORKFLOW_ROLES


class State(str, Enum):
    """Stages of the application lifecycle."""

    DRAFT = "DRAFT"
    INTAKE_REVIEW = "INTAKE_REVIEW"
    CONTROL_ASSIGN = "CONTROL_ASSIGN"
    CONTROL_VISIT_SCHEDULED = "CONTROL_VISIT_SCHEDULED"
    CONTROL_IN_PROGRESS = "CONTROL_IN_PROGRESS"
    TECHNICAL_REVIEW = "TECHNICAL_REVIEW"
    SOCIAL_REVIEW = "SOCIAL_REVIEW"
    DIRECTOR_REVIEW = "DIRECTOR_REVIEW"
    MINISTER_DECISION = "MINISTER_DECISION"
    CLOSURE = "CLOSURE"
    REJECTED = "REJECTED"


INITIAL_STATE = State.DRAFT

TERMINAL_STATES: FrozenSet[State] = frozenset({State.CLOSURE, State.REJECTED})

# Stages an application passes through on the way to a decision
PIPELINE_STATES: List[State] = [s for s in State if s not in TERMINAL_STATES]


class TransitionRule(NamedTuple):
    """Defines a forward edge of the workflow graph."""
    from_state: State
    to_state: State


TRANSITION_RULES: List[TransitionRule] = [
    # Intake
    TransitionRule(State.DRAFT, State.INTAKE_REVIEW),
    TransitionRule(State.INTAKE_REVIEW, State.CONTROL_ASSIGN),

    # Control visit
    TransitionRule(State.CONTROL_ASSIGN, State.CONTROL_VISIT_SCHEDULED),
    TransitionRule(State.CONTROL_VISIT_SCHEDULED, State.CONTROL_IN_PROGRESS),
    TransitionRule(State.CONTROL_IN_PROGRESS, State.TECHNICAL_REVIEW),
    TransitionRule(State.CONTROL_IN_PROGRESS, State.SOCIAL_REVIEW),

    # Reviews, in either order
    TransitionRule(State.TECHNICAL_REVIEW, State.SOCIAL_REVIEW),
    TransitionRule(State.SOCIAL_REVIEW, State.TECHNICAL_REVIEW),
    TransitionRule(State.TECHNICAL_REVIEW, State.DIRECTOR_REVIEW),
    TransitionRule(State.SOCIAL_REVIEW, State.DIRECTOR_REVIEW),

    # Decision
    TransitionRule(State.DIRECTOR_REVIEW, State.MINISTER_DECISION),
    TransitionRule(State.MINISTER_DECISION, State.CLOSURE),
]

# Sources allowed to reject when allow_reject_from_any_state is off
REJECTION_SOURCES: FrozenSet[State] = frozenset({
    State.INTAKE_REVIEW,
    State.DIRECTOR_REVIEW,
    State.MINISTER_DECISION,
})

# Build lookup table for efficient access
VALID_TRANSITIONS: Dict[State, Set[State]] = {state: set() for state in State}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS[rule.from_state].add(rule.to_state)


_ANY = frozenset(WORKFLOW_ROLES)

# Roles allowed to move an application INTO a state
ENTRY_ROLES: Dict[State, FrozenSet[Role]] = {
    State.DRAFT: frozenset({Role.ADMIN, Role.IT, Role.STAFF, Role.FRONT_OFFICE}),
    State.INTAKE_REVIEW: frozenset({Role.ADMIN, Role.IT, Role.STAFF, Role.FRONT_OFFICE}),
    State.CONTROL_ASSIGN: frozenset({Role.ADMIN, Role.IT, Role.STAFF}),
    State.CONTROL_VISIT_SCHEDULED: frozenset({Role.ADMIN, Role.IT, Role.CONTROL}),
    State.CONTROL_IN_PROGRESS: frozenset({Role.ADMIN, Role.IT, Role.CONTROL}),
    State.TECHNICAL_REVIEW: frozenset({Role.ADMIN, Role.IT, Role.STAFF, Role.CONTROL}),
    State.SOCIAL_REVIEW: frozenset({Role.ADMIN, Role.IT, Role.STAFF, Role.CONTROL}),
    State.DIRECTOR_REVIEW: frozenset({Role.ADMIN, Role.IT, Role.DIRECTOR}),
    State.MINISTER_DECISION: frozenset({Role.ADMIN, Role.IT, Role.DIRECTOR}),
    State.CLOSURE: frozenset({Role.ADMIN, Role.MINISTER}),
    State.REJECTED: _ANY,
}

# Roles allowed to move an application OUT OF a state
EXIT_ROLES: Dict[State, FrozenSet[Role]] = {
    State.DRAFT: _ANY,
    State.INTAKE_REVIEW: _ANY,
    State.CONTROL_ASSIGN: _ANY,
    State.CONTROL_VISIT_SCHEDULED: _ANY,
    State.CONTROL_IN_PROGRESS: _ANY,
    State.TECHNICAL_REVIEW: _ANY,
    State.SOCIAL_REVIEW: _ANY,
    State.DIRECTOR_REVIEW: frozenset({Role.DIRECTOR, Role.ADMIN, Role.IT}),
    State.MINISTER_DECISION: frozenset({Role.MINISTER, Role.ADMIN}),
    State.CLOSURE: frozenset(),
    State.REJECTED: frozenset(),
}

# SLA per stage, in hours
SLA_HOURS: Dict[State, int] = {
    State.DRAFT: 72,
    State.INTAKE_REVIEW: 48,
    State.CONTROL_ASSIGN: 24,
    State.CONTROL_VISIT_SCHEDULED: 168,
    State.CONTROL_IN_PROGRESS: 72,
    State.TECHNICAL_REVIEW: 120,
    State.SOCIAL_REVIEW: 120,
    State.DIRECTOR_REVIEW: 168,
    State.MINISTER_DECISION: 240,
    State.CLOSURE: 0,
    State.REJECTED: 0,
}

# Role notified when an application enters a state (None: nobody by role)
NOTIFY_ROLES: Dict[State, Optional[Role]] = {
    State.DRAFT: None,
    State.INTAKE_REVIEW: None,
    State.CONTROL_ASSIGN: Role.CONTROL,
    State.CONTROL_VISIT_SCHEDULED: None,
    State.CONTROL_IN_PROGRESS: None,
    State.TECHNICAL_REVIEW: Role.STAFF,
    State.SOCIAL_REVIEW: Role.STAFF,
    State.DIRECTOR_REVIEW: Role.DIRECTOR,
    State.MINISTER_DECISION: Role.MINISTER,
    State.CLOSURE: None,
    State.REJECTED: None,
}

# Human-readable requirements shown next to available transitions
STATE_REQUIREMENTS: Dict[State, List[str]] = {
    State.DRAFT: [],
    State.INTAKE_REVIEW: [],
    State.CONTROL_ASSIGN: [],
    State.CONTROL_VISIT_SCHEDULED: [],
    State.CONTROL_IN_PROGRESS: [],
    State.TECHNICAL_REVIEW: [],
    State.SOCIAL_REVIEW: [],
    State.DIRECTOR_REVIEW: ["Technical report approved", "Social report approved"],
    State.MINISTER_DECISION: ["Director recommendation provided"],
    State.CLOSURE: ["Approved amount set"],
    State.REJECTED: [],
}


def coerce_state(value) -> State:
    """Return ``value`` as a ``State``; raises ``ValueError`` for unknown names."""
    if isinstance(value, State):
        return value
    return State(str(value).upper())


def is_terminal(state) -> bool:
    return coerce_state(state) in TERMINAL_STATES


def can_transition(
    from_state: State,
    to_state: State,
    *,
    allow_reject_from_any_state: bool = True,
) -> bool:
    """Check if the graph has an edge from ``from_state`` to ``to_state``."""
    if from_state == to_state or from_state in TERMINAL_STATES:
        return False
    if to_state == State.REJECTED:
        return allow_reject_from_any_state or from_state in REJECTION_SOURCES
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def get_next_states(
    from_state: State,
    *,
    allow_reject_from_any_state: bool = True,
) -> List[State]:
    """Targets reachable in one step, in declaration order."""
    return [
        state for state in State
        if can_transition(from_state, state, allow_reject_from_any_state=allow_reject_from_any_state)
    ]


def format_state_name(state) -> str:
    """``DIRECTOR_REVIEW`` -> ``Director Review``."""
    name = getattr(state, "value", state)
    return " ".join(word.capitalize() for word in str(name).split("_"))


def validate_tables() -> None:
    """Check that every policy table has an entry for every state."""
    tables = {
        "ENTRY_ROLES": ENTRY_ROLES,
        "EXIT_ROLES": EXIT_ROLES,
        "SLA_HOURS": SLA_HOURS,
        "NOTIFY_ROLES": NOTIFY_ROLES,
        "STATE_REQUIREMENTS": STATE_REQUIREMENTS,
        "VALID_TRANSITIONS": VALID_TRANSITIONS,
    }
    problems = []
    for table_name, table in tables.items():
        missing = [state.value for state in State if state not in table]
        if missing:
            problems.append(f"{table_name} has no entry for {', '.join(missing)}")

    for rule in TRANSITION_RULES:
        if rule.from_state == rule.to_state:
            problems.append(f"self-loop on {rule.from_state.value}")
        if rule.from_state in TERMINAL_STATES:
            problems.append(f"terminal state {rule.from_state.value} has an outgoing edge")
        if rule.to_state == State.CLOSURE and rule.from_state != State.MINISTER_DECISION:
            problems.append(f"CLOSURE reachable from {rule.from_state.value}")

    for state in PIPELINE_STATES:
        if not EXIT_ROLES[state]:
            problems.append(f"non-terminal state {state.value} has no exit roles")

    if problems:
        raise WorkflowConfigurationError("Invalid workflow tables: " + "; ".join(problems))


validate_tables()
