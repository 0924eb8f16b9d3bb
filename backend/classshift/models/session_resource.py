import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from classshift.db.base import Base
from classshift.models.resource import Resource

OCCUPANCY_INDEX_NAME = "uq_session_resources_active_slot"
ACTIVE_SESSION_INDEX_NAME = "uq_session_resources_active_session"


class SessionResource(Base):
    """Ledger row linking a session to the resource it occupies.

    ``session_date`` and ``time_slot_id`` mirror the owning session so the
    partial unique index can reject a second active booking of the same
    resource at the same date and timeslot, whatever the application layer did.
    Rows are deactivated rather than deleted when the session stops occupying
    the resource.
    """

    __tablename__ = "session_resources"
    __table_args__ = (
        Index(
            OCCUPANCY_INDEX_NAME,
            "resource_id",
            "session_date",
            "time_slot_id",
            unique=True,
            postgresql_where=text("is_active = true"),
            sqlite_where=text("is_active = 1"),
        ),
        Index(
            ACTIVE_SESSION_INDEX_NAME,
            "session_id",
            unique=True,
            postgresql_where=text("is_active = true"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("class_sessions.id"), index=True, nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), ForeignKey("resources.id"), index=True, nullable=False)
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_slot_id: Mapped[str] = mapped_column(String(36), ForeignKey("time_slot_templates.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    resource: Mapped[Resource] = relationship(lazy="joined")


occupancy_index = next(item for item in SessionResource.__table__.indexes if item.name == OCCUPANCY_INDEX_NAME)
