"""Role lookup for workflow actors.

The workflow never verifies credentials; it asks a ``RoleProvider`` which
roles an already-authenticated actor holds.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Set
from uuid import UUID

from sqlalchemy.orm import Session

from .roles import Role, normalize_roles


class RoleProvider(ABC):
    """Resolves an actor ID to the set of roles the actor holds."""

    @abstractmethod
    def roles_of(self, actor_id: UUID) -> Set[Role]:
        """Return the actor's roles; an unknown actor has no roles."""


class DatabaseRoleProvider(RoleProvider):
    """Reads roles from the ``user_roles`` table."""

    def __init__(self, db: Session):
        self.db = db

    def roles_of(self, actor_id: UUID) -> Set[Role]:
        from subsidy.db.models import UserRole

        rows = self.db.query(UserRole.role).filter(UserRole.user_id == actor_id).all()
        return normalize_roles(row[0] for row in rows)


class StaticRoleProvider(RoleProvider):
    """Fixed actor -> roles mapping, for scripts and tests."""

    def __init__(self, assignments: Optional[Dict[UUID, Iterable]] = None):
        self._assignments = {
            actor_id: normalize_roles(roles)
            for actor_id, roles in (assignments or {}).items()
        }

    def grant(self, actor_id: UUID, *roles) -> None:
        self._assignments.setdefault(actor_id, set()).update(normalize_roles(roles))

    def roles_of(self, actor_id: UUID) -> Set[Role]:
        return set(self._assignments.get(actor_id, set()))
