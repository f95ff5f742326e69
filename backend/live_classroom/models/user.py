"""User database model and the role enum shared with the live core."""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Enum, Index

from live_classroom.database import Base


class UserRole(str, enum.Enum):
    """Classroom roles."""
    TEACHER = "teacher"
    STUDENT = "student"


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(120), nullable=False)
    email = Column(String(120), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole, values_callable=lambda e: [m.value for m in e]), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_users_role_email", "role", "email"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}', role={self.role})>"
