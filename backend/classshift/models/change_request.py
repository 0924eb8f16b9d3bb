import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Date, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from classshift.db.base import Base
from classshift.models.class_session import ClassSession
from classshift.models.teacher import Teacher


class ChangeRequestType(str, Enum):
    reschedule = "reschedule"
    swap = "swap"
    modality_change = "modality_change"


class ChangeRequestStatus(str, Enum):
    pending = "pending"
    waiting_confirm = "waiting_confirm"
    approved = "approved"
    rejected = "rejected"


OPEN_REQUEST_STATUSES = (ChangeRequestStatus.pending, ChangeRequestStatus.waiting_confirm)


class ChangeRequest(Base):
    __tablename__ = "change_requests"
    __table_args__ = (
        CheckConstraint(
            "request_type != 'swap' OR "
            "(new_date IS NULL AND new_time_slot_id IS NULL AND new_resource_id IS NULL)",
            name="ck_change_requests_swap_payload",
        ),
        CheckConstraint(
            "request_type != 'modality_change' OR "
            "(new_date IS NULL AND new_time_slot_id IS NULL AND replacement_teacher_id IS NULL)",
            name="ck_change_requests_modality_payload",
        ),
        CheckConstraint(
            "request_type != 'reschedule' OR replacement_teacher_id IS NULL",
            name="ck_change_requests_reschedule_payload",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id: Mapped[str] = mapped_column(String(36), ForeignKey("teachers.id"), index=True, nullable=False)
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("class_sessions.id"), index=True, nullable=False)
    request_type: Mapped[ChangeRequestType] = mapped_column(
        SAEnum(ChangeRequestType, name="change_request_type"),
        nullable=False,
    )
    status: Mapped[ChangeRequestStatus] = mapped_column(
        SAEnum(ChangeRequestStatus, name="change_request_status"),
        nullable=False,
        default=ChangeRequestStatus.pending,
        index=True,
    )
    request_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    new_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    new_time_slot_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("time_slot_templates.id"), nullable=True
    )
    new_resource_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("resources.id"), nullable=True)
    replacement_teacher_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("teachers.id"), index=True, nullable=True
    )
    new_session_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("class_sessions.id"), nullable=True)

    submitted_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    decided_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    teacher: Mapped[Teacher] = relationship(foreign_keys=[teacher_id], lazy="joined")
    session: Mapped[ClassSession] = relationship(foreign_keys=[session_id], lazy="joined")

    __mapper_args__ = {"version_id_col": version}
