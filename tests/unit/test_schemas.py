"""Tests for request schemas and error serialization."""

import uuid

import pytest
from pydantic import ValidationError

from subsidy.core.errors import (
    AuthorizationError,
    ConcurrencyConflict,
    NotFoundError,
    PersistenceError,
    PreconditionError,
    TransitionTimeoutError,
)
from subsidy.core.workflow.states import State
from subsidy.schemas.workflow import TransitionRequest


class TestTransitionRequest:

    def test_target_state_is_case_insensitive(self):
        request = TransitionRequest(application_id=uuid.uuid4(), target_state="minister_decision")
        assert request.target_state == State.MINISTER_DECISION

    def test_unknown_state_rejected(self):
        with pytest.raises(ValidationError):
            TransitionRequest(application_id=uuid.uuid4(), target_state="ARCHIVED")

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            TransitionRequest(application_id=uuid.uuid4(), target_state="CLOSURE", approved_amount=-1)


class TestErrorSerialization:

    def test_precondition_lists_missing_items(self):
        error = PreconditionError(["technical report missing/unapproved", "social report missing/unapproved"])
        assert error.to_dict() == {
            "kind": "precondition",
            "reason": "technical report missing/unapproved; social report missing/unapproved",
            "retryable": False,
            "missing": ["technical report missing/unapproved", "social report missing/unapproved"],
        }

    def test_authorization_lists_required_roles(self):
        error = AuthorizationError("denied", {"director", "admin"})
        assert error.to_dict()["required_roles"] == ["admin", "director"]

    def test_retryable_flags(self):
        assert ConcurrencyConflict(uuid.uuid4()).retryable is True
        assert TransitionTimeoutError("slow").retryable is False
        assert NotFoundError("Application", "x").retryable is False

    def test_timeout_is_a_persistence_error(self):
        assert isinstance(TransitionTimeoutError("slow"), PersistenceError)
        assert TransitionTimeoutError("slow").kind == "timeout"
