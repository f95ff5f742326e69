"""Attendance popup and focus telemetry logs."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Index, UniqueConstraint

from live_classroom.database import Base
from live_classroom.models.user import _new_id


class PopupLog(Base):
    __tablename__ = "popup_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    cycle_id = Column(String(36), nullable=False, index=True)
    class_id = Column(String(36), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    responded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    responded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("cycle_id", "student_id", name="uq_popup_cycle_student"),
        Index("ix_popup_logs_class_student", "class_id", "student_id"),
    )


class FocusLog(Base):
    __tablename__ = "focus_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(String(36), ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String(10), nullable=False)
    duration_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_focus_logs_class_student", "class_id", "student_id"),
    )
