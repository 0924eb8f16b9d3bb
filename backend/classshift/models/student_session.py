from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from classshift.db.base import Base


class AttendanceStatus(str, Enum):
    planned = "planned"
    present = "present"
    absent = "absent"


class StudentSession(Base):
    __tablename__ = "student_sessions"

    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("class_sessions.id"), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), primary_key=True, index=True)
    attendance_status: Mapped[AttendanceStatus] = mapped_column(
        SAEnum(AttendanceStatus, name="attendance_status"),
        nullable=False,
        default=AttendanceStatus.planned,
    )
    is_makeup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
