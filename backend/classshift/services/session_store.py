"""Session lifecycle mutations used by the change-request workflow.

Resource links are only ever created through ``conflict_arbiter.reserve_resource``;
nothing here moves a resource without passing the availability check first.
"""
from __future__ import annotations

from datetime import date
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from classshift.core.exceptions import NotFoundError, ValidationError
from classshift.models.class_session import ClassSession, SessionStatus
from classshift.models.resource import Resource
from classshift.models.session_resource import SessionResource
from classshift.models.student_session import AttendanceStatus, StudentSession
from classshift.models.time_slot import TimeSlotTemplate
from classshift.services import conflict_arbiter

logger = logging.getLogger(__name__)


def get_session(db: Session, session_id: str, *, for_update: bool = False) -> ClassSession:
    query = select(ClassSession).where(ClassSession.id == session_id)
    if for_update:
        query = query.with_for_update(of=ClassSession)
    session = db.execute(query).unique().scalar_one_or_none()
    if session is None:
        raise NotFoundError("Session", session_id)
    return session


def active_resource_link(db: Session, session_id: str) -> SessionResource | None:
    return db.execute(
        select(SessionResource).where(
            SessionResource.session_id == session_id,
            SessionResource.is_active.is_(True),
        )
    ).unique().scalar_one_or_none()


def create_session(
    db: Session,
    *,
    source: ClassSession,
    session_date: date,
    time_slot: TimeSlotTemplate,
) -> ClassSession:
    """Create a PLANNED occurrence of the source session's class at a new date and timeslot."""
    session = ClassSession(
        class_id=source.class_id,
        time_slot_id=time_slot.id,
        session_date=session_date,
        status=SessionStatus.planned,
        topic=source.topic,
    )
    db.add(session)
    db.flush()
    logger.info(
        "Created session %s for class %s on %s (%s)",
        session.id,
        source.class_id,
        session_date.isoformat(),
        time_slot.name,
    )
    return session


def attach_resource(db: Session, *, session: ClassSession, resource: Resource) -> SessionResource:
    if session.status == SessionStatus.cancelled:
        raise ValidationError("Cannot book a resource for a cancelled session", code="SESSION_NOT_PLANNED")
    return conflict_arbiter.reserve_resource(db, session=session, resource=resource)


def replace_resource(db: Session, *, session: ClassSession, resource: Resource) -> SessionResource:
    released = conflict_arbiter.release_resources(db, session_id=session.id)
    link = attach_resource(db, session=session, resource=resource)
    logger.info(
        "Session %s moved from resource(s) %s to %s",
        session.id,
        [item.resource_id for item in released],
        resource.id,
    )
    return link


def cancel_session(db: Session, session: ClassSession) -> ClassSession:
    if session.status == SessionStatus.cancelled:
        raise ValidationError(f"Session {session.id} is already cancelled", code="SESSION_NOT_PLANNED")
    session.status = SessionStatus.cancelled
    conflict_arbiter.release_resources(db, session_id=session.id)
    logger.info("Cancelled session %s", session.id)
    return session


def copy_planned_roster(db: Session, *, source_session_id: str, target_session_id: str) -> int:
    rows = list(
        db.execute(
            select(StudentSession).where(
                StudentSession.session_id == source_session_id,
                StudentSession.attendance_status == AttendanceStatus.planned,
            )
        ).scalars()
    )
    for row in rows:
        db.add(
            StudentSession(
                session_id=target_session_id,
                student_id=row.student_id,
                attendance_status=AttendanceStatus.planned,
                is_makeup=False,
            )
        )
    db.flush()
    return len(rows)


def roster_student_ids(db: Session, session_id: str) -> list[str]:
    return list(
        db.execute(select(StudentSession.student_id).where(StudentSession.session_id == session_id)).scalars()
    )
