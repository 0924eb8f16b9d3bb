"""Read-only helpers that help a teacher fill in a change request.

Each helper runs the same checks the workflow applies on approval, so
a suggestion is only a hint. The state can still change before staff decide.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import date
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from classshift.core.exceptions import AuthorizationError, NotFoundError
from classshift.models.change_request import ChangeRequest, ChangeRequestType
from classshift.models.class_session import ClassSession
from classshift.models.resource import Resource
from classshift.models.teacher import Teacher
from classshift.models.time_slot import TimeSlotTemplate
from classshift.models.training_class import TrainingClass
from classshift.models.user import User
from classshift.schemas.schedule import ResourceSuggestionOut, SwapCandidateOut, TimeSlotSuggestionOut
from classshift.services import conflict_arbiter, session_store, teaching_assignments
from classshift.services.audit import list_activity
from classshift.services.change_requests import (
    ENTITY_TYPE,
    declined_teacher_ids,
    ensure_within_window,
    get_teacher_for_user,
)

logger = logging.getLogger(__name__)


def _resolve_context(db: Session, *, user: User, session_id: str) -> tuple[ClassSession, list[str]]:
    """Return the session and the ids of the teachers whose availability matters."""
    session = session_store.get_session(db, session_id)
    active_ids = teaching_assignments.active_teacher_ids(db, session.id)
    if user.is_staff:
        return session, active_ids
    teacher = get_teacher_for_user(db, user)
    if teacher is None or teacher.id not in active_ids:
        raise AuthorizationError("Only the session's teacher or academic staff can view suggestions")
    return session, [teacher.id]


def _teachers_free(
    db: Session,
    *,
    teacher_ids: list[str],
    session_date: date,
    time_slot_id: str,
    exclude_session_id: str,
) -> bool:
    return not any(
        conflict_arbiter.has_teacher_conflict(
            db,
            teacher_id=teacher_id,
            session_date=session_date,
            time_slot_id=time_slot_id,
            exclude_session_id=exclude_session_id,
        )
        for teacher_id in teacher_ids
    )


def _branch_resources(db: Session, branch_id: str) -> list[Resource]:
    return list(db.execute(select(Resource).where(Resource.branch_id == branch_id).order_by(Resource.name)).scalars())


def _usable_resources(
    db: Session,
    *,
    session: ClassSession,
    session_date: date,
    time_slot_id: str,
    exclude_session_id: str | None,
    suits: Callable[[Resource, TrainingClass], bool],
) -> list[Resource]:
    student_count = conflict_arbiter.roster_size(db, session.id)
    return [
        resource
        for resource in _branch_resources(db, session.training_class.branch_id)
        if suits(resource, session.training_class)
        and conflict_arbiter.has_capacity(resource, student_count)
        and conflict_arbiter.is_resource_available(
            db,
            resource_id=resource.id,
            session_date=session_date,
            time_slot_id=time_slot_id,
            exclude_session_id=exclude_session_id,
        )
    ]


def _resource_out(resource: Resource, *, current: bool = False) -> ResourceSuggestionOut:
    return ResourceSuggestionOut(
        resource_id=resource.id,
        code=resource.code,
        name=resource.name,
        resource_type=resource.resource_type,
        capacity=resource.capacity,
        branch_id=resource.branch_id,
        current_resource=current,
    )


def suggest_time_slots(db: Session, *, user: User, session_id: str, on_date: date) -> list[TimeSlotSuggestionOut]:
    session, teacher_ids = _resolve_context(db, user=user, session_id=session_id)
    ensure_within_window(on_date, code="NEW_DATE_NOT_IN_TIME_WINDOW")

    time_slots = db.execute(
        select(TimeSlotTemplate)
        .where(TimeSlotTemplate.branch_id == session.training_class.branch_id)
        .order_by(TimeSlotTemplate.start_time)
    ).scalars()

    output: list[TimeSlotSuggestionOut] = []
    for time_slot in time_slots:
        if not _teachers_free(
            db,
            teacher_ids=teacher_ids,
            session_date=on_date,
            time_slot_id=time_slot.id,
            exclude_session_id=session.id,
        ):
            continue
        if conflict_arbiter.conflicting_student_ids(
            db,
            session_id=session.id,
            session_date=on_date,
            time_slot_id=time_slot.id,
        ):
            continue
        resources = _usable_resources(
            db,
            session=session,
            session_date=on_date,
            time_slot_id=time_slot.id,
            exclude_session_id=None,
            suits=conflict_arbiter.serves_modality,
        )
        output.append(
            TimeSlotSuggestionOut(
                time_slot_id=time_slot.id,
                label=time_slot.label,
                start_time=time_slot.start_time,
                end_time=time_slot.end_time,
                available_resource_count=len(resources),
            )
        )
    return output


def suggest_resources(
    db: Session,
    *,
    user: User,
    session_id: str,
    on_date: date,
    time_slot_id: str,
) -> list[ResourceSuggestionOut]:
    session, teacher_ids = _resolve_context(db, user=user, session_id=session_id)
    ensure_within_window(on_date, code="NEW_DATE_NOT_IN_TIME_WINDOW")
    if db.get(TimeSlotTemplate, time_slot_id) is None:
        raise NotFoundError("TimeSlot", time_slot_id)

    if not _teachers_free(
        db,
        teacher_ids=teacher_ids,
        session_date=on_date,
        time_slot_id=time_slot_id,
        exclude_session_id=session.id,
    ):
        return []
    if conflict_arbiter.conflicting_student_ids(
        db,
        session_id=session.id,
        session_date=on_date,
        time_slot_id=time_slot_id,
    ):
        return []
    resources = _usable_resources(
        db,
        session=session,
        session_date=on_date,
        time_slot_id=time_slot_id,
        exclude_session_id=None,
        suits=conflict_arbiter.serves_modality,
    )
    return [_resource_out(resource) for resource in resources]


def suggest_modality_resources(db: Session, *, user: User, session_id: str) -> list[ResourceSuggestionOut]:
    session, _ = _resolve_context(db, user=user, session_id=session_id)
    ensure_within_window(session.session_date, code="SESSION_NOT_IN_TIME_WINDOW")

    link = session_store.active_resource_link(db, session.id)
    current_id = link.resource_id if link else None
    resources = _usable_resources(
        db,
        session=session,
        session_date=session.session_date,
        time_slot_id=session.time_slot_id,
        exclude_session_id=session.id,
        suits=conflict_arbiter.fits_modality,
    )
    output = [_resource_out(resource, current=resource.id == current_id) for resource in resources]
    output.sort(key=lambda item: (not item.current_resource, item.name.lower()))
    return output


def _declined_for_session(db: Session, session_id: str) -> set[str]:
    requests = list(
        db.execute(
            select(ChangeRequest).where(
                ChangeRequest.session_id == session_id,
                ChangeRequest.request_type == ChangeRequestType.swap,
            )
        )
        .unique()
        .scalars()
    )
    declined: set[str] = set()
    for request in requests:
        declined |= declined_teacher_ids(request.note)
    # The marker is overwritten once staff decide again; the audit trail keeps every decline.
    for entry in list_activity(
        db,
        entity_type=ENTITY_TYPE,
        entity_ids=[request.id for request in requests],
        action="change_request.swap.decline",
    ):
        teacher_id = (entry.details or {}).get("teacher_id")
        if teacher_id:
            declined.add(teacher_id)
    return declined


def _skill_priority(teacher: Teacher, subject_code: str | None) -> int:
    skills = {item.lower() for item in (teacher.skills or [])}
    if subject_code and subject_code.lower() in skills:
        return 2
    return 1 if skills else 0


def suggest_swap_candidates(db: Session, *, user: User, session_id: str) -> list[SwapCandidateOut]:
    session, teacher_ids = _resolve_context(db, user=user, session_id=session_id)
    ensure_within_window(session.session_date, code="SESSION_NOT_IN_TIME_WINDOW")

    excluded = set(teacher_ids) | _declined_for_session(db, session.id)
    teachers = db.execute(select(Teacher)).unique().scalars()

    candidates: list[SwapCandidateOut] = []
    for teacher in teachers:
        if teacher.id in excluded or not teacher.user.is_active:
            continue
        has_conflict = conflict_arbiter.has_teacher_conflict(
            db,
            teacher_id=teacher.id,
            session_date=session.session_date,
            time_slot_id=session.time_slot_id,
        )
        candidates.append(
            SwapCandidateOut(
                teacher_id=teacher.id,
                full_name=teacher.full_name,
                email=teacher.email,
                skill_priority=_skill_priority(teacher, session.training_class.subject_code),
                availability_priority=0 if has_conflict else 1,
                has_conflict=has_conflict,
            )
        )
    candidates.sort(key=lambda item: (-item.skill_priority, -item.availability_priority, item.full_name.lower()))
    logger.debug("Found %d swap candidate(s) for session %s", len(candidates), session.id)
    return candidates
