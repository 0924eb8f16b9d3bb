import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from classshift.db.base import Base
from classshift.models.time_slot import TimeSlotTemplate
from classshift.models.training_class import TrainingClass


class SessionStatus(str, Enum):
    planned = "planned"
    done = "done"
    cancelled = "cancelled"


OCCUPYING_SESSION_STATUSES = (SessionStatus.planned, SessionStatus.done)


class ClassSession(Base):
    __tablename__ = "class_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    class_id: Mapped[str] = mapped_column(String(36), ForeignKey("training_classes.id"), index=True, nullable=False)
    time_slot_id: Mapped[str] = mapped_column(String(36), ForeignKey("time_slot_templates.id"), nullable=False)
    session_date: Mapped[date] = mapped_column(Date, index=True, nullable=False)
    status: Mapped[SessionStatus] = mapped_column(
        SAEnum(SessionStatus, name="session_status"),
        nullable=False,
        default=SessionStatus.planned,
        index=True,
    )
    topic: Mapped[str | None] = mapped_column(String(300), nullable=True)
    teacher_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    training_class: Mapped[TrainingClass] = relationship(lazy="joined")
    time_slot: Mapped[TimeSlotTemplate] = relationship(lazy="joined")
