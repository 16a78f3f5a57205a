"""Tests for workflow roles and role providers."""

import uuid

import pytest

from subsidy.core.rbac import (
    ALL_ROLES,
    WORKFLOW_ROLES,
    DatabaseRoleProvider,
    Role,
    StaticRoleProvider,
    normalize_roles,
)

from tests.factories import grant_role


class TestRoles:

    def test_role_values(self):
        assert {r.value for r in ALL_ROLES} == {
            "admin", "it", "staff", "front_office", "control",
            "director", "minister", "applicant",
        }

    def test_applicant_is_not_a_workflow_role(self):
        assert Role.APPLICANT not in WORKFLOW_ROLES
        assert len(WORKFLOW_ROLES) == 7

    def test_normalize_roles(self):
        assert normalize_roles(["Director", Role.STAFF, "janitor"]) == {Role.DIRECTOR, Role.STAFF}
        assert normalize_roles(None) == set()


class TestStaticRoleProvider:

    def test_lookup_and_grant(self):
        actor = uuid.uuid4()
        provider = StaticRoleProvider({actor: ["staff"]})
        provider.grant(actor, "director")

        assert provider.roles_of(actor) == {Role.STAFF, Role.DIRECTOR}
        assert provider.roles_of(uuid.uuid4()) == set()

    def test_returns_copy(self):
        actor = uuid.uuid4()
        provider = StaticRoleProvider({actor: ["staff"]})
        provider.roles_of(actor).add(Role.ADMIN)
        assert provider.roles_of(actor) == {Role.STAFF}


@pytest.mark.db
class TestDatabaseRoleProvider:

    def test_reads_user_roles(self, db_session):
        actor = grant_role(db_session, None, "control", "staff")
        grant_role(db_session, None, "minister")

        provider = DatabaseRoleProvider(db_session)

        assert provider.roles_of(actor) == {Role.CONTROL, Role.STAFF}
        assert provider.roles_of(uuid.uuid4()) == set()
