"""Role-based access control for the subsidy workflow."""

from .roles import Role, ALL_ROLES, WORKFLOW_ROLES, normalize_roles
from .provider import RoleProvider, DatabaseRoleProvider, StaticRoleProvider

__all__ = [
    "Role",
    "ALL_ROLES",
    "WORKFLOW_ROLES",
    "normalize_roles",
    "RoleProvider",
    "DatabaseRoleProvider",
    "StaticRoleProvider",
]
