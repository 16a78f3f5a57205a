"""In-app notification model.

Rows are written by the notification worker, never by the workflow
transaction itself.
"""

import uuid

from sqlalchemy import Column, String, DateTime, Text, Boolean, Uuid

from subsidy.db.base import Base, utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    application_id = Column(Uuid, nullable=True, index=True)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    category = Column(String(50), nullable=False, default="APPLICATION")
    is_read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Notification {self.title!r} -> {self.user_id}>"
