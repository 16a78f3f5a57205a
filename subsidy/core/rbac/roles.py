"""Role definitions for the subsidy workflow.

Roles are plain strings on the wire and in the ``user_roles`` table:

1. admin - Full workflow access
2. it - System operators with admin rights on most stages
3. staff - Intake and review officers
4. front_office - Intake desk
5. control - Site-visit inspectors
6. director - Director recommendation
7. minister - Ministerial decision
8. applicant - Citizens; no workflow rights
"""

from enum import Enum
from typing import FrozenSet, Iterable, Set


class Role(str, Enum):
    """Roles known to the workflow engine."""

    ADMIN = "admin"
    IT = "it"
    STAFF = "staff"
    FRONT_OFFICE = "front_office"
    CONTROL = "control"
    DIRECTOR = "director"
    MINISTER = "minister"
    APPLICANT = "applicant"


ALL_ROLES: FrozenSet[Role] = frozenset(Role)

# Roles that can act on applications at all
WORKFLOW_ROLES: FrozenSet[Role] = ALL_ROLES - {Role.APPLICANT}


def normalize_roles(roles: Iterable) -> Set[Role]:
    """Convert role strings to ``Role`` members, dropping unknown names."""
    normalized = set()
    for role in roles or ():
        try:
            normalized.add(Role(str(getattr(role, "value", role)).lower()))
        except ValueError:
            continue
    return normalized
