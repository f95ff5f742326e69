"""Class and enrollment database models."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from live_classroom.database import Base
from live_classroom.models.user import _new_id


class Classroom(Base):
    __tablename__ = "classes"

    id = Column(String(36), primary_key=True, default=_new_id)
    teacher_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    code = Column(String(20), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    teacher = relationship("User")
    enrollments = relationship("Enrollment", back_populates="classroom", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Classroom(id={self.id}, title='{self.title}', teacher_id={self.teacher_id})>"


class Enrollment(Base):
    __tablename__ = "enrollments"

    id = Column(String(36), primary_key=True, default=_new_id)
    class_id = Column(String(36), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    enrolled_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    classroom = relationship("Classroom", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_enrollment_class_student"),
    )
