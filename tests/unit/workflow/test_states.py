"""Tests for workflow state definitions and policy tables."""

import pytest

from subsidy.core.errors import WorkflowConfigurationError
from subsidy.core.rbac.roles import Role
from subsidy.core.workflow import states
from subsidy.core.workflow.states import (
    ENTRY_ROLES,
    EXIT_ROLES,
    INITIAL_STATE,
    NOTIFY_ROLES,
    PIPELINE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    State,
    can_transition,
    coerce_state,
    format_state_name,
    get_next_states,
    is_terminal,
    validate_tables,
)


class TestStateDefinitions:
    """Test state enumeration and groupings."""

    def test_all_states_defined(self):
        """Test that the eleven lifecycle states exist."""
        expected = [
            "DRAFT", "INTAKE_REVIEW", "CONTROL_ASSIGN", "CONTROL_VISIT_SCHEDULED",
            "CONTROL_IN_PROGRESS", "TECHNICAL_REVIEW", "SOCIAL_REVIEW",
            "DIRECTOR_REVIEW", "MINISTER_DECISION", "CLOSURE", "REJECTED",
        ]
        assert [s.value for s in State] == expected

    def test_initial_and_terminal_states(self):
        assert INITIAL_STATE == State.DRAFT
        assert TERMINAL_STATES == {State.CLOSURE, State.REJECTED}
        assert is_terminal("closure")
        assert not is_terminal(State.DIRECTOR_REVIEW)

    def test_pipeline_states_exclude_terminals(self):
        assert len(PIPELINE_STATES) == 9
        assert not set(PIPELINE_STATES) & TERMINAL_STATES

    def test_coerce_state_accepts_lowercase(self):
        assert coerce_state("director_review") == State.DIRECTOR_REVIEW
        assert coerce_state(State.CLOSURE) is State.CLOSURE

    def test_coerce_state_rejects_unknown(self):
        with pytest.raises(ValueError):
            coerce_state("ARCHIVED")

    def test_format_state_name(self):
        assert format_state_name(State.DIRECTOR_REVIEW) == "Director Review"
        assert format_state_name("CONTROL_VISIT_SCHEDULED") == "Control Visit Scheduled"


class TestTransitionGraph:
    """Test the legal transition graph."""

    def test_happy_path_edges(self):
        assert can_transition(State.DRAFT, State.INTAKE_REVIEW)
        assert can_transition(State.INTAKE_REVIEW, State.CONTROL_ASSIGN)
        assert can_transition(State.CONTROL_ASSIGN, State.CONTROL_VISIT_SCHEDULED)
        assert can_transition(State.CONTROL_VISIT_SCHEDULED, State.CONTROL_IN_PROGRESS)
        assert can_transition(State.CONTROL_IN_PROGRESS, State.TECHNICAL_REVIEW)
        assert can_transition(State.CONTROL_IN_PROGRESS, State.SOCIAL_REVIEW)
        assert can_transition(State.DIRECTOR_REVIEW, State.MINISTER_DECISION)
        assert can_transition(State.MINISTER_DECISION, State.CLOSURE)

    def test_reviews_run_in_either_order(self):
        assert can_transition(State.TECHNICAL_REVIEW, State.SOCIAL_REVIEW)
        assert can_transition(State.SOCIAL_REVIEW, State.TECHNICAL_REVIEW)
        assert can_transition(State.TECHNICAL_REVIEW, State.DIRECTOR_REVIEW)
        assert can_transition(State.SOCIAL_REVIEW, State.DIRECTOR_REVIEW)

    def test_skipping_stages_not_allowed(self):
        assert not can_transition(State.DRAFT, State.CONTROL_ASSIGN)
        assert not can_transition(State.INTAKE_REVIEW, State.DIRECTOR_REVIEW)
        assert not can_transition(State.DIRECTOR_REVIEW, State.CLOSURE)

    def test_closure_only_from_minister_decision(self):
        sources = [s for s in State if can_transition(s, State.CLOSURE)]
        assert sources == [State.MINISTER_DECISION]

    def test_no_self_loops(self):
        for state in State:
            assert not can_transition(state, state)

    def test_terminal_states_have_no_outgoing_edges(self):
        for terminal in TERMINAL_STATES:
            assert get_next_states(terminal) == []
            assert not VALID_TRANSITIONS[terminal]

    def test_reject_from_any_non_terminal_state(self):
        for state in PIPELINE_STATES:
            assert can_transition(state, State.REJECTED)

    def test_reject_restricted_when_policy_off(self):
        allowed = [
            s for s in PIPELINE_STATES
            if can_transition(s, State.REJECTED, allow_reject_from_any_state=False)
        ]
        assert allowed == [State.INTAKE_REVIEW, State.DIRECTOR_REVIEW, State.MINISTER_DECISION]

    def test_next_states_in_declaration_order(self):
        assert get_next_states(State.CONTROL_IN_PROGRESS) == [
            State.TECHNICAL_REVIEW, State.SOCIAL_REVIEW, State.REJECTED,
        ]


class TestPolicyTables:
    """Test the role and notification tables."""

    def test_tables_cover_every_state(self):
        validate_tables()
        for table in (ENTRY_ROLES, EXIT_ROLES, NOTIFY_ROLES):
            assert set(table) == set(State)

    def test_documented_role_gates(self):
        assert ENTRY_ROLES[State.CONTROL_ASSIGN] == {Role.ADMIN, Role.IT, Role.STAFF}
        assert ENTRY_ROLES[State.DIRECTOR_REVIEW] == {Role.ADMIN, Role.IT, Role.DIRECTOR}
        assert EXIT_ROLES[State.DIRECTOR_REVIEW] == {Role.DIRECTOR, Role.ADMIN, Role.IT}
        assert EXIT_ROLES[State.MINISTER_DECISION] == {Role.MINISTER, Role.ADMIN}
        assert ENTRY_ROLES[State.CLOSURE] == {Role.MINISTER, Role.ADMIN}

    def test_every_entry_role_can_leave_some_predecessor(self):
        """An entry role nobody can exercise means the two tables disagree."""
        for target in State:
            predecessors = [s for s in State if target in get_next_states(s)]
            if not predecessors:
                continue
            reachable = set().union(*(EXIT_ROLES[s] for s in predecessors))
            assert ENTRY_ROLES[target] <= reachable, target

    def test_applicants_have_no_workflow_rights(self):
        for roles in list(ENTRY_ROLES.values()) + list(EXIT_ROLES.values()):
            assert Role.APPLICANT not in roles

    def test_notify_roles(self):
        assert NOTIFY_ROLES[State.CONTROL_ASSIGN] == Role.CONTROL
        assert NOTIFY_ROLES[State.TECHNICAL_REVIEW] == Role.STAFF
        assert NOTIFY_ROLES[State.SOCIAL_REVIEW] == Role.STAFF
        assert NOTIFY_ROLES[State.DIRECTOR_REVIEW] == Role.DIRECTOR
        assert NOTIFY_ROLES[State.MINISTER_DECISION] == Role.MINISTER
        assert NOTIFY_ROLES[State.CLOSURE] is None

    def test_missing_table_entry_is_rejected(self, monkeypatch):
        """A table without an entry for every state fails validation."""
        incomplete = dict(states.SLA_HOURS)
        del incomplete[State.SOCIAL_REVIEW]
        monkeypatch.setattr(states, "SLA_HOURS", incomplete)

        with pytest.raises(WorkflowConfigurationError) as exc_info:
            validate_tables()
        assert "SLA_HOURS has no entry for SOCIAL_REVIEW" in exc_info.value.reason

    def test_missing_exit_roles_is_rejected(self, monkeypatch):
        broken = dict(states.EXIT_ROLES)
        broken[State.DRAFT] = frozenset()
        monkeypatch.setattr(states, "EXIT_ROLES", broken)

        with pytest.raises(WorkflowConfigurationError):
            validate_tables()
