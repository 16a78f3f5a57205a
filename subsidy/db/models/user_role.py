import uuid

from sqlalchemy import Column, String, DateTime, Uuid, UniqueConstraint

from subsidy.db.base import Base, utcnow


class UserRole(Base):
    """Grants one workflow role to one user. Users may hold several roles."""
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    role = Column(String(50), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<UserRole {self.user_id} {self.role}>"
