"""Availability decisions for resources, teachers and rostered students.

Every check here reads through the caller's session, so it must run inside
the same transaction as the mutation it guards. ``reserve_resource`` is the
only way a resource gets linked to a session; the partial unique index on
``session_resources`` backs it up when two writers race past the fast check.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from classshift.core.exceptions import ResourceConflictError, ScheduleConflictError, ValidationError
from classshift.models.class_session import OCCUPYING_SESSION_STATUSES, ClassSession
from classshift.models.resource import Resource, ResourceType
from classshift.models.session_resource import SessionResource
from classshift.models.student_session import StudentSession
from classshift.models.teaching_assignment import ACTIVE_ASSIGNMENT_STATUSES, TeachingAssignment
from classshift.models.training_class import Modality, TrainingClass

logger = logging.getLogger(__name__)


def is_resource_available(
    db: Session,
    *,
    resource_id: str,
    session_date: date,
    time_slot_id: str,
    exclude_session_id: str | None = None,
) -> bool:
    query = (
        select(SessionResource.id)
        .join(ClassSession, ClassSession.id == SessionResource.session_id)
        .where(
            SessionResource.resource_id == resource_id,
            SessionResource.is_active.is_(True),
            ClassSession.session_date == session_date,
            ClassSession.time_slot_id == time_slot_id,
            ClassSession.status.in_(OCCUPYING_SESSION_STATUSES),
        )
    )
    if exclude_session_id is not None:
        query = query.where(SessionResource.session_id != exclude_session_id)
    return db.execute(query.limit(1)).first() is None


def ensure_resource_available(
    db: Session,
    *,
    resource_id: str,
    session_date: date,
    time_slot_id: str,
    exclude_session_id: str | None = None,
) -> None:
    if not is_resource_available(
        db,
        resource_id=resource_id,
        session_date=session_date,
        time_slot_id=time_slot_id,
        exclude_session_id=exclude_session_id,
    ):
        logger.info(
            "Resource %s already occupied on %s at timeslot %s",
            resource_id,
            session_date.isoformat(),
            time_slot_id,
        )
        raise ResourceConflictError(resource_id=resource_id, session_date=session_date, time_slot_id=time_slot_id)


def reserve_resource(db: Session, *, session: ClassSession, resource: Resource) -> SessionResource:
    ensure_resource_available(
        db,
        resource_id=resource.id,
        session_date=session.session_date,
        time_slot_id=session.time_slot_id,
        exclude_session_id=session.id,
    )
    link = SessionResource(
        session_id=session.id,
        resource_id=resource.id,
        session_date=session.session_date,
        time_slot_id=session.time_slot_id,
        is_active=True,
    )
    try:
        with db.begin_nested():
            db.add(link)
    except IntegrityError as exc:
        logger.info(
            "Occupancy index rejected resource %s for session %s on %s",
            resource.id,
            session.id,
            session.session_date.isoformat(),
        )
        raise ResourceConflictError(
            resource_id=resource.id,
            session_date=session.session_date,
            time_slot_id=session.time_slot_id,
        ) from exc
    return link


def release_resources(db: Session, *, session_id: str) -> list[SessionResource]:
    links = list(
        db.execute(
            select(SessionResource).where(
                SessionResource.session_id == session_id,
                SessionResource.is_active.is_(True),
            )
        ).scalars()
    )
    now = datetime.now(timezone.utc)
    for link in links:
        link.is_active = False
        link.released_at = now
    db.flush()
    return links


def has_teacher_conflict(
    db: Session,
    *,
    teacher_id: str,
    session_date: date,
    time_slot_id: str,
    exclude_session_id: str | None = None,
) -> bool:
    query = (
        select(TeachingAssignment.session_id)
        .join(ClassSession, ClassSession.id == TeachingAssignment.session_id)
        .where(
            TeachingAssignment.teacher_id == teacher_id,
            TeachingAssignment.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
            ClassSession.session_date == session_date,
            ClassSession.time_slot_id == time_slot_id,
            ClassSession.status.in_(OCCUPYING_SESSION_STATUSES),
        )
    )
    if exclude_session_id is not None:
        query = query.where(TeachingAssignment.session_id != exclude_session_id)
    return db.execute(query.limit(1)).first() is not None


def ensure_teacher_available(
    db: Session,
    *,
    teacher_id: str,
    session_date: date,
    time_slot_id: str,
    exclude_session_id: str | None = None,
) -> None:
    if has_teacher_conflict(
        db,
        teacher_id=teacher_id,
        session_date=session_date,
        time_slot_id=time_slot_id,
        exclude_session_id=exclude_session_id,
    ):
        raise ScheduleConflictError(
            "Teacher already teaches another session at this date and timeslot",
            code="TEACHER_AVAILABILITY_CONFLICT",
            details={
                "teacher_id": teacher_id,
                "session_date": session_date.isoformat(),
                "time_slot_id": time_slot_id,
            },
        )


def conflicting_student_ids(
    db: Session,
    *,
    session_id: str,
    session_date: date,
    time_slot_id: str,
) -> list[str]:
    roster = select(StudentSession.student_id).where(StudentSession.session_id == session_id)
    query = (
        select(StudentSession.student_id)
        .join(ClassSession, ClassSession.id == StudentSession.session_id)
        .where(
            StudentSession.student_id.in_(roster),
            StudentSession.session_id != session_id,
            ClassSession.session_date == session_date,
            ClassSession.time_slot_id == time_slot_id,
            ClassSession.status.in_(OCCUPYING_SESSION_STATUSES),
        )
        .distinct()
    )
    return list(db.execute(query).scalars())


def ensure_no_student_conflicts(
    db: Session,
    *,
    session_id: str,
    session_date: date,
    time_slot_id: str,
) -> None:
    student_ids = conflicting_student_ids(
        db,
        session_id=session_id,
        session_date=session_date,
        time_slot_id=time_slot_id,
    )
    if student_ids:
        raise ScheduleConflictError(
            f"{len(student_ids)} student(s) already attend another session at this date and timeslot",
            code="SCHEDULE_CONFLICT",
            details={"student_ids": sorted(student_ids)},
        )


def fits_modality(resource: Resource, training_class: TrainingClass) -> bool:
    # A modality change flips the delivery mode for one session: offline classes move to a
    # virtual link, online classes move into a room, hybrid classes may use either.
    if training_class.modality == Modality.offline:
        return resource.resource_type == ResourceType.virtual
    if training_class.modality == Modality.online:
        return resource.resource_type == ResourceType.room
    return True


def serves_modality(resource: Resource, training_class: TrainingClass) -> bool:
    """Resources that keep the class in its usual delivery mode, used when moving a session."""
    if training_class.modality == Modality.offline:
        return resource.resource_type == ResourceType.room
    if training_class.modality == Modality.online:
        return resource.resource_type == ResourceType.virtual
    return True


def ensure_resource_fits_modality(resource: Resource, training_class: TrainingClass) -> None:
    if not fits_modality(resource, training_class):
        raise ValidationError(
            f"Resource {resource.code} ({resource.resource_type.value}) does not suit a "
            f"{training_class.modality.value} class",
            code="INVALID_RESOURCE_FOR_MODALITY",
        )


def roster_size(db: Session, session_id: str) -> int:
    return db.execute(
        select(func.count()).select_from(StudentSession).where(StudentSession.session_id == session_id)
    ).scalar_one()


def has_capacity(resource: Resource, student_count: int) -> bool:
    return resource.capacity is None or resource.capacity >= student_count


def ensure_resource_capacity(db: Session, *, resource: Resource, session_id: str) -> None:
    student_count = roster_size(db, session_id)
    if not has_capacity(resource, student_count):
        raise ValidationError(
            f"Resource {resource.code} holds {resource.capacity} but the session has {student_count} students",
            code="RESOURCE_CAPACITY_INSUFFICIENT",
        )


def ensure_resource_in_branch(resource: Resource, training_class: TrainingClass) -> None:
    if resource.branch_id != training_class.branch_id:
        raise ValidationError(
            f"Resource {resource.code} does not belong to the branch of class {training_class.code}",
            code="RESOURCE_BRANCH_MISMATCH",
        )
