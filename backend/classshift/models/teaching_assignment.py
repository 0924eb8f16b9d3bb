from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from classshift.db.base import Base


class AssignmentStatus(str, Enum):
    scheduled = "scheduled"
    on_leave = "on_leave"
    substituted = "substituted"


ACTIVE_ASSIGNMENT_STATUSES = (AssignmentStatus.scheduled, AssignmentStatus.substituted)


class TeachingAssignment(Base):
    __tablename__ = "teaching_assignments"

    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("class_sessions.id"), primary_key=True)
    teacher_id: Mapped[str] = mapped_column(String(36), ForeignKey("teachers.id"), primary_key=True, index=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        SAEnum(AssignmentStatus, name="teaching_assignment_status"),
        nullable=False,
        default=AssignmentStatus.scheduled,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
