"""Teacher schedule-change workflow.

A request starts PENDING. Staff approve or reject it; RESCHEDULE and
MODALITY_CHANGE approvals apply their side effects immediately, while a SWAP
approval only nominates a replacement and parks the request in
WAITING_CONFIRM until the nominee confirms (APPROVED) or declines (back to
PENDING for staff to decide again).

Every mutating call is one unit of work: availability checks and the
resulting writes share a transaction, and any failure rolls everything back.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
import logging
import re

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from classshift.core.config import get_settings
from classshift.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from classshift.db.session import atomic
from classshift.models.change_request import (
    OPEN_REQUEST_STATUSES,
    ChangeRequest,
    ChangeRequestStatus,
    ChangeRequestType,
)
from classshift.models.class_session import ClassSession, SessionStatus
from classshift.models.notification import NotificationType
from classshift.models.resource import Resource
from classshift.models.session_resource import SessionResource
from classshift.models.teacher import Teacher
from classshift.models.teaching_assignment import ACTIVE_ASSIGNMENT_STATUSES, AssignmentStatus, TeachingAssignment
from classshift.models.time_slot import TimeSlotTemplate
from classshift.models.user import STAFF_ROLES, User
from classshift.schemas.change_request import (
    ChangeRequestApprove,
    ChangeRequestCreate,
    ModalityChangeDetails,
    RescheduleDetails,
    SwapDetails,
)
from classshift.schemas.schedule import TeacherSessionOut
from classshift.services import conflict_arbiter, session_store, teaching_assignments
from classshift.services.audit import log_activity
from classshift.services.notifications import notify_roles, notify_users

logger = logging.getLogger(__name__)

DECLINE_MARKER_PREFIX = "DECLINED_BY_TEACHER_ID_"
DECLINE_MARKER_PATTERN = re.compile(re.escape(DECLINE_MARKER_PREFIX) + r"([0-9A-Za-z-]+)")

ENTITY_TYPE = "change_request"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def decline_marker(teacher_id: str, reason: str) -> str:
    return f"{DECLINE_MARKER_PREFIX}{teacher_id}: {reason}"


def declined_teacher_ids(note: str | None) -> set[str]:
    if not note:
        return set()
    return set(DECLINE_MARKER_PATTERN.findall(note))


def get_teacher_for_user(db: Session, user: User) -> Teacher | None:
    return db.execute(select(Teacher).where(Teacher.user_id == user.id)).unique().scalar_one_or_none()


def require_teacher(db: Session, user: User) -> Teacher:
    teacher = get_teacher_for_user(db, user)
    if teacher is None:
        raise NotFoundError("Teacher profile for user", user.id)
    return teacher


def require_staff(user: User) -> None:
    if user.role not in STAFF_ROLES:
        raise AuthorizationError("Only academic staff can decide teacher requests")


def _require_teacher_by_id(db: Session, teacher_id: str) -> Teacher:
    teacher = db.get(Teacher, teacher_id)
    if teacher is None:
        raise NotFoundError("Teacher", teacher_id)
    return teacher


def _require_resource(db: Session, resource_id: str) -> Resource:
    resource = db.get(Resource, resource_id)
    if resource is None:
        raise NotFoundError("Resource", resource_id)
    return resource


def _require_time_slot(db: Session, time_slot_id: str, *, session: ClassSession) -> TimeSlotTemplate:
    time_slot = db.get(TimeSlotTemplate, time_slot_id)
    if time_slot is None:
        raise NotFoundError("TimeSlot", time_slot_id)
    if time_slot.branch_id != session.training_class.branch_id:
        raise ValidationError(
            f"Timeslot {time_slot.name} is not offered by the class's branch",
            code="TIMESLOT_BRANCH_MISMATCH",
        )
    return time_slot


def _load_request(db: Session, request_id: str, *, for_update: bool = False) -> ChangeRequest:
    query = select(ChangeRequest).where(ChangeRequest.id == request_id)
    if for_update:
        query = query.with_for_update(of=ChangeRequest)
    request = db.execute(query).unique().scalar_one_or_none()
    if request is None:
        raise NotFoundError("ChangeRequest", request_id)
    return request


def _ensure_status(request: ChangeRequest, expected: ChangeRequestStatus, *, action: str) -> None:
    if request.status != expected:
        raise StateConflictError(
            f"Cannot {action} request {request.id}: status is {request.status.value}, "
            f"expected {expected.value}",
            code="REQUEST_NOT_" + expected.value.upper(),
            details={"status": request.status.value},
        )


def _ensure_swap(request: ChangeRequest) -> None:
    if request.request_type != ChangeRequestType.swap:
        raise ValidationError(
            f"Request {request.id} is a {request.request_type.value} request, not a swap",
            code="INVALID_REQUEST_TYPE",
        )


def _ensure_session_planned(session: ClassSession) -> None:
    if session.status != SessionStatus.planned:
        raise ValidationError(
            f"Session {session.id} is {session.status.value}; only planned sessions can change",
            code="SESSION_NOT_PLANNED",
        )


def ensure_within_window(target: date, *, code: str) -> None:
    today = date.today()
    latest = today + timedelta(days=get_settings().request_window_days)
    if target < today or target > latest:
        raise ValidationError(
            f"{target.isoformat()} is outside the request window {today.isoformat()} to {latest.isoformat()}",
            code=code,
        )


def _flush_decision(db: Session, request_id: str) -> None:
    # The session is unusable after a failed flush; report with the caller's id.
    try:
        db.flush()
    except StaleDataError as exc:
        raise StateConflictError(
            f"Request {request_id} was decided concurrently",
            code="CONCURRENT_DECISION",
        ) from exc


# Submission ---------------------------------------------------------------


def _prepare_reschedule(
    db: Session, *, request: ChangeRequest, session: ClassSession, teacher: Teacher, details: RescheduleDetails
) -> None:
    if details.new_date < date.today():
        raise ValidationError("The new date cannot be in the past", code="INVALID_NEW_DATE")
    ensure_within_window(details.new_date, code="NEW_DATE_NOT_IN_TIME_WINDOW")
    time_slot = _require_time_slot(db, details.new_time_slot_id, session=session)
    resource = _require_resource(db, details.new_resource_id)
    conflict_arbiter.ensure_resource_in_branch(resource, session.training_class)
    request.new_date = details.new_date
    request.new_time_slot_id = time_slot.id
    request.new_resource_id = resource.id


def _prepare_modality_change(
    db: Session, *, request: ChangeRequest, session: ClassSession, teacher: Teacher, details: ModalityChangeDetails
) -> None:
    if details.new_resource_id is None:
        return
    resource = _require_resource(db, details.new_resource_id)
    conflict_arbiter.ensure_resource_in_branch(resource, session.training_class)
    conflict_arbiter.ensure_resource_fits_modality(resource, session.training_class)
    conflict_arbiter.ensure_resource_capacity(db, resource=resource, session_id=session.id)
    conflict_arbiter.ensure_resource_available(
        db,
        resource_id=resource.id,
        session_date=session.session_date,
        time_slot_id=session.time_slot_id,
        exclude_session_id=session.id,
    )
    request.new_resource_id = resource.id


def _prepare_swap(
    db: Session, *, request: ChangeRequest, session: ClassSession, teacher: Teacher, details: SwapDetails
) -> None:
    if details.replacement_teacher_id is None:
        return
    replacement = _require_teacher_by_id(db, details.replacement_teacher_id)
    if replacement.id == teacher.id:
        raise ValidationError("A teacher cannot nominate themselves as replacement", code="INVALID_REPLACEMENT")
    request.replacement_teacher_id = replacement.id


_SUBMISSION_HANDLERS: dict[ChangeRequestType, Callable[..., None]] = {
    ChangeRequestType.reschedule: _prepare_reschedule,
    ChangeRequestType.modality_change: _prepare_modality_change,
    ChangeRequestType.swap: _prepare_swap,
}


def submit_request(db: Session, *, user: User, payload: ChangeRequestCreate) -> ChangeRequest:
    details = payload.details
    request_type = ChangeRequestType(details.kind)
    with atomic(db):
        teacher = require_teacher(db, user)
        session = session_store.get_session(db, payload.session_id, for_update=True)
        if not teaching_assignments.is_active_assignee(db, session_id=session.id, teacher_id=teacher.id):
            raise ValidationError(
                f"Teacher {teacher.id} is not the active teacher of session {session.id}",
                code="TEACHER_DOES_NOT_OWN_SESSION",
            )
        _ensure_session_planned(session)
        ensure_within_window(session.session_date, code="SESSION_NOT_IN_TIME_WINDOW")

        duplicate = db.execute(
            select(ChangeRequest.id).where(
                ChangeRequest.session_id == session.id,
                ChangeRequest.request_type == request_type,
                ChangeRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
        ).first()
        if duplicate is not None:
            raise StateConflictError(
                f"An open {request_type.value} request already exists for session {session.id}",
                code="TEACHER_REQUEST_DUPLICATE",
                details={"request_id": duplicate[0]},
            )

        request = ChangeRequest(
            teacher_id=teacher.id,
            session_id=session.id,
            request_type=request_type,
            status=ChangeRequestStatus.pending,
            request_reason=_normalize_text(payload.reason),
            submitted_by_id=user.id,
            submitted_at=_utc_now(),
        )
        _SUBMISSION_HANDLERS[request_type](db, request=request, session=session, teacher=teacher, details=details)
        db.add(request)
        db.flush()

        log_activity(
            db,
            user=user,
            action="change_request.submit",
            entity_type=ENTITY_TYPE,
            entity_id=request.id,
            details={"request_type": request_type.value, "session_id": session.id},
        )
        notify_roles(
            db,
            roles=STAFF_ROLES,
            title="New Teacher Request",
            message=(
                f"{teacher.full_name} submitted a {request_type.value.replace('_', ' ')} request for "
                f"{session.training_class.code} on {session.session_date.isoformat()}."
            ),
            entity_id=request.id,
        )
    logger.info("Teacher %s submitted %s request %s for session %s", teacher.id, request_type.value, request.id, session.id)
    return request


# Approval -----------------------------------------------------------------


_OVERRIDE_FIELDS: dict[ChangeRequestType, set[str]] = {
    ChangeRequestType.reschedule: {"new_date", "new_time_slot_id", "new_resource_id"},
    ChangeRequestType.modality_change: {"new_resource_id"},
    ChangeRequestType.swap: {"replacement_teacher_id"},
}


def _ensure_overrides_match(request: ChangeRequest, overrides: ChangeRequestApprove) -> None:
    supplied = {
        name
        for name in ("new_date", "new_time_slot_id", "new_resource_id", "replacement_teacher_id")
        if getattr(overrides, name) is not None
    }
    unexpected = supplied - _OVERRIDE_FIELDS[request.request_type]
    if unexpected:
        raise ValidationError(
            f"Fields {sorted(unexpected)} do not apply to a {request.request_type.value} request",
            code="INVALID_INPUT",
        )


def _approve_reschedule(db: Session, *, request: ChangeRequest, overrides: ChangeRequestApprove) -> ChangeRequestStatus:
    old_session = session_store.get_session(db, request.session_id, for_update=True)
    _ensure_session_planned(old_session)

    new_date = overrides.new_date or request.new_date
    new_time_slot_id = overrides.new_time_slot_id or request.new_time_slot_id
    new_resource_id = overrides.new_resource_id or request.new_resource_id
    if new_date is None or new_time_slot_id is None or new_resource_id is None:
        raise ValidationError("A reschedule needs a new date, timeslot and resource", code="INVALID_INPUT")
    if new_date < date.today():
        raise ValidationError("The new date cannot be in the past", code="INVALID_NEW_DATE")

    time_slot = _require_time_slot(db, new_time_slot_id, session=old_session)
    resource = _require_resource(db, new_resource_id)
    conflict_arbiter.ensure_resource_in_branch(resource, old_session.training_class)
    conflict_arbiter.ensure_teacher_available(
        db,
        teacher_id=request.teacher_id,
        session_date=new_date,
        time_slot_id=time_slot.id,
        exclude_session_id=old_session.id,
    )
    conflict_arbiter.ensure_no_student_conflicts(
        db,
        session_id=old_session.id,
        session_date=new_date,
        time_slot_id=time_slot.id,
    )
    conflict_arbiter.ensure_resource_available(
        db,
        resource_id=resource.id,
        session_date=new_date,
        time_slot_id=time_slot.id,
    )
    if teaching_assignments.get_assignment(db, session_id=old_session.id, teacher_id=request.teacher_id) is None:
        raise NotFoundError("TeachingAssignment", f"{old_session.id}/{request.teacher_id}")

    new_session = session_store.create_session(db, source=old_session, session_date=new_date, time_slot=time_slot)
    session_store.attach_resource(db, session=new_session, resource=resource)
    teaching_assignments.upsert_assignment(
        db,
        session_id=new_session.id,
        teacher_id=request.teacher_id,
        status=AssignmentStatus.scheduled,
    )
    copied = session_store.copy_planned_roster(db, source_session_id=old_session.id, target_session_id=new_session.id)
    session_store.cancel_session(db, old_session)

    request.new_date = new_date
    request.new_time_slot_id = time_slot.id
    request.new_resource_id = resource.id
    request.new_session_id = new_session.id
    logger.info(
        "Reschedule %s: session %s cancelled, session %s created with %d student(s)",
        request.id,
        old_session.id,
        new_session.id,
        copied,
    )
    return ChangeRequestStatus.approved


def _approve_modality_change(
    db: Session, *, request: ChangeRequest, overrides: ChangeRequestApprove
) -> ChangeRequestStatus:
    session = session_store.get_session(db, request.session_id, for_update=True)
    _ensure_session_planned(session)

    resource_id = overrides.new_resource_id or request.new_resource_id
    if resource_id is None:
        raise ValidationError("A modality change needs a resource", code="INVALID_INPUT")
    resource = _require_resource(db, resource_id)

    conflict_arbiter.ensure_resource_in_branch(resource, session.training_class)
    conflict_arbiter.ensure_resource_fits_modality(resource, session.training_class)
    conflict_arbiter.ensure_resource_capacity(db, resource=resource, session_id=session.id)
    session_store.replace_resource(db, session=session, resource=resource)

    request.new_resource_id = resource.id
    logger.info("Modality change %s: session %s now uses resource %s", request.id, session.id, resource.id)
    return ChangeRequestStatus.approved


def _approve_swap(db: Session, *, request: ChangeRequest, overrides: ChangeRequestApprove) -> ChangeRequestStatus:
    session = session_store.get_session(db, request.session_id, for_update=True)
    _ensure_session_planned(session)

    replacement_id = overrides.replacement_teacher_id or request.replacement_teacher_id
    if replacement_id is None:
        raise ValidationError("A swap needs a replacement teacher", code="INVALID_INPUT")
    replacement = _require_teacher_by_id(db, replacement_id)
    if replacement.id == request.teacher_id:
        raise ValidationError("The replacement must differ from the requesting teacher", code="INVALID_REPLACEMENT")
    conflict_arbiter.ensure_teacher_available(
        db,
        teacher_id=replacement.id,
        session_date=session.session_date,
        time_slot_id=session.time_slot_id,
    )

    request.replacement_teacher_id = replacement.id
    logger.info("Swap %s: waiting for teacher %s to confirm session %s", request.id, replacement.id, session.id)
    return ChangeRequestStatus.waiting_confirm


APPROVAL_HANDLERS: dict[ChangeRequestType, Callable[..., ChangeRequestStatus]] = {
    ChangeRequestType.reschedule: _approve_reschedule,
    ChangeRequestType.modality_change: _approve_modality_change,
    ChangeRequestType.swap: _approve_swap,
}


def _notify_approval(db: Session, *, request: ChangeRequest, user: User) -> None:
    session = request.session
    label = f"{session.training_class.code} on {session.session_date.isoformat()}"
    if request.status == ChangeRequestStatus.waiting_confirm:
        replacement = _require_teacher_by_id(db, request.replacement_teacher_id)
        notify_users(
            db,
            user_ids=[replacement.user_id],
            title="Substitution Requested",
            message=f"You were nominated to teach {label}. Please confirm or decline.",
            entity_id=request.id,
        )
        notify_users(
            db,
            user_ids=[request.teacher.user_id],
            title="Swap Approved",
            message=f"Your swap request for {label} is waiting for {replacement.full_name} to confirm.",
            entity_id=request.id,
        )
        return

    notify_users(
        db,
        user_ids=[request.teacher.user_id],
        title="Teacher Request Approved",
        message=f"Your {request.request_type.value.replace('_', ' ')} request for {label} was approved.",
        entity_id=request.id,
    )
    if request.request_type == ChangeRequestType.reschedule and request.new_session_id:
        notify_users(
            db,
            user_ids=session_store.roster_student_ids(db, request.new_session_id),
            title="Class Rescheduled",
            message=f"{label} moved to {request.new_date.isoformat()}.",
            notification_type=NotificationType.schedule,
            entity_id=request.new_session_id,
        )


def approve_request(
    db: Session,
    *,
    request_id: str,
    user: User,
    payload: ChangeRequestApprove | None = None,
) -> ChangeRequest:
    require_staff(user)
    overrides = payload or ChangeRequestApprove()
    with atomic(db):
        request = _load_request(db, request_id, for_update=True)
        _ensure_status(request, ChangeRequestStatus.pending, action="approve")
        _ensure_overrides_match(request, overrides)

        request.status = APPROVAL_HANDLERS[request.request_type](db, request=request, overrides=overrides)
        request.decided_by_id = user.id
        request.decided_at = _utc_now()
        request.note = _normalize_text(overrides.note)
        _flush_decision(db, request_id)

        log_activity(
            db,
            user=user,
            action="change_request.approve",
            entity_type=ENTITY_TYPE,
            entity_id=request.id,
            details={
                "request_type": request.request_type.value,
                "status": request.status.value,
                "new_session_id": request.new_session_id,
                "new_resource_id": request.new_resource_id,
                "replacement_teacher_id": request.replacement_teacher_id,
            },
        )
        _notify_approval(db, request=request, user=user)
    logger.info("Request %s approved by %s, now %s", request.id, user.id, request.status.value)
    return request


def reject_request(db: Session, *, request_id: str, user: User, reason: str) -> ChangeRequest:
    require_staff(user)
    with atomic(db):
        request = _load_request(db, request_id, for_update=True)
        _ensure_status(request, ChangeRequestStatus.pending, action="reject")
        request.status = ChangeRequestStatus.rejected
        request.decided_by_id = user.id
        request.decided_at = _utc_now()
        request.note = _normalize_text(reason)
        _flush_decision(db, request_id)

        log_activity(
            db,
            user=user,
            action="change_request.reject",
            entity_type=ENTITY_TYPE,
            entity_id=request.id,
            details={"reason": request.note},
        )
        notify_users(
            db,
            user_ids=[request.teacher.user_id],
            title="Teacher Request Rejected",
            message=(
                f"Your {request.request_type.value.replace('_', ' ')} request for "
                f"{request.session.session_date.isoformat()} was rejected: {request.note}"
            ),
            entity_id=request.id,
        )
    logger.info("Request %s rejected by %s", request.id, user.id)
    return request


# Swap confirmation --------------------------------------------------------


def _load_waiting_swap(db: Session, *, request_id: str, user: User, action: str) -> tuple[ChangeRequest, Teacher]:
    request = _load_request(db, request_id, for_update=True)
    _ensure_swap(request)
    _ensure_status(request, ChangeRequestStatus.waiting_confirm, action=action)
    teacher = get_teacher_for_user(db, user)
    if teacher is None or request.replacement_teacher_id != teacher.id:
        raise AuthorizationError("Only the nominated replacement teacher can answer this swap", code="NOT_NOMINEE")
    return request, teacher


def confirm_swap(db: Session, *, request_id: str, user: User) -> ChangeRequest:
    with atomic(db):
        request, replacement = _load_waiting_swap(db, request_id=request_id, user=user, action="confirm")
        session = session_store.get_session(db, request.session_id, for_update=True)
        _ensure_session_planned(session)
        if teaching_assignments.get_assignment(db, session_id=session.id, teacher_id=request.teacher_id) is None:
            raise NotFoundError("TeachingAssignment", f"{session.id}/{request.teacher_id}")
        conflict_arbiter.ensure_teacher_available(
            db,
            teacher_id=replacement.id,
            session_date=session.session_date,
            time_slot_id=session.time_slot_id,
            exclude_session_id=session.id,
        )

        teaching_assignments.upsert_assignment(
            db,
            session_id=session.id,
            teacher_id=request.teacher_id,
            status=AssignmentStatus.on_leave,
        )
        teaching_assignments.upsert_assignment(
            db,
            session_id=session.id,
            teacher_id=replacement.id,
            status=AssignmentStatus.substituted,
        )
        request.status = ChangeRequestStatus.approved
        request.decided_at = _utc_now()
        _flush_decision(db, request_id)

        log_activity(
            db,
            user=user,
            action="change_request.swap.confirm",
            entity_type=ENTITY_TYPE,
            entity_id=request.id,
            details={"session_id": session.id, "teacher_id": replacement.id},
        )
        notify_users(
            db,
            user_ids=[request.teacher.user_id, request.decided_by_id],
            title="Swap Confirmed",
            message=(
                f"{replacement.full_name} will teach {session.training_class.code} on "
                f"{session.session_date.isoformat()}."
            ),
            entity_id=request.id,
        )
    logger.info("Swap %s confirmed by teacher %s", request.id, replacement.id)
    return request


def decline_swap(db: Session, *, request_id: str, user: User, reason: str) -> ChangeRequest:
    with atomic(db):
        request, nominee = _load_waiting_swap(db, request_id=request_id, user=user, action="decline")
        reason_text = _normalize_text(reason) or "no reason given"
        request.status = ChangeRequestStatus.pending
        request.replacement_teacher_id = None
        request.note = decline_marker(nominee.id, reason_text)
        request.decided_at = _utc_now()
        _flush_decision(db, request_id)

        log_activity(
            db,
            user=user,
            action="change_request.swap.decline",
            entity_type=ENTITY_TYPE,
            entity_id=request.id,
            details={"session_id": request.session_id, "teacher_id": nominee.id, "reason": reason_text},
        )
        notify_users(
            db,
            user_ids=[request.teacher.user_id, request.decided_by_id],
            title="Swap Declined",
            message=(
                f"{nominee.full_name} declined to cover {request.session.training_class.code} on "
                f"{request.session.session_date.isoformat()}. The request is pending again."
            ),
            entity_id=request.id,
        )
    logger.info("Swap %s declined by teacher %s, back to pending", request.id, nominee.id)
    return request


# Queries ------------------------------------------------------------------


def get_request(db: Session, *, request_id: str, user: User) -> ChangeRequest:
    request = _load_request(db, request_id)
    if user.role in STAFF_ROLES:
        return request
    teacher = get_teacher_for_user(db, user)
    if teacher is None or teacher.id not in {request.teacher_id, request.replacement_teacher_id}:
        raise AuthorizationError("You cannot view this request")
    return request


def list_requests_for_teacher(
    db: Session,
    *,
    user: User,
    status: ChangeRequestStatus | None = None,
) -> list[ChangeRequest]:
    teacher = require_teacher(db, user)
    query = select(ChangeRequest).where(
        or_(ChangeRequest.teacher_id == teacher.id, ChangeRequest.replacement_teacher_id == teacher.id)
    )
    if status is not None:
        query = query.where(ChangeRequest.status == status)
    return list(db.execute(query.order_by(ChangeRequest.submitted_at.desc())).unique().scalars())


def list_requests_for_staff(
    db: Session,
    *,
    user: User,
    status: ChangeRequestStatus | None = None,
) -> list[ChangeRequest]:
    require_staff(user)
    query = select(ChangeRequest)
    if status is not None:
        query = query.where(ChangeRequest.status == status)
    return list(db.execute(query.order_by(ChangeRequest.submitted_at.desc())).unique().scalars())


def list_teacher_sessions(db: Session, *, user: User, on_date: date | None = None) -> list[TeacherSessionOut]:
    teacher = require_teacher(db, user)
    today = date.today()
    if on_date is not None:
        if on_date < today:
            raise ValidationError("Cannot list sessions in the past", code="INVALID_INPUT")
        from_date = to_date = on_date
    else:
        from_date = today
        to_date = today + timedelta(days=get_settings().request_window_days)

    sessions = list(
        db.execute(
            select(ClassSession)
            .join(TeachingAssignment, TeachingAssignment.session_id == ClassSession.id)
            .where(
                TeachingAssignment.teacher_id == teacher.id,
                TeachingAssignment.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
                ClassSession.status == SessionStatus.planned,
                ClassSession.session_date >= from_date,
                ClassSession.session_date <= to_date,
            )
            .order_by(ClassSession.session_date)
        )
        .unique()
        .scalars()
    )
    if not sessions:
        return []

    session_ids = [item.id for item in sessions]
    pending_session_ids = set(
        db.execute(
            select(ChangeRequest.session_id).where(
                ChangeRequest.session_id.in_(session_ids),
                ChangeRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
        ).scalars()
    )
    links = {
        item.session_id: item
        for item in db.execute(
            select(SessionResource).where(
                SessionResource.session_id.in_(session_ids),
                SessionResource.is_active.is_(True),
            )
        )
        .unique()
        .scalars()
    }

    output: list[TeacherSessionOut] = []
    for session in sorted(sessions, key=lambda item: (item.session_date, item.time_slot.start_time)):
        link = links.get(session.id)
        output.append(
            TeacherSessionOut(
                session_id=session.id,
                session_date=session.session_date,
                time_slot_id=session.time_slot_id,
                time_slot_name=session.time_slot.name,
                start_time=session.time_slot.start_time,
                end_time=session.time_slot.end_time,
                class_id=session.class_id,
                class_code=session.training_class.code,
                class_name=session.training_class.name,
                modality=session.training_class.modality,
                topic=session.topic,
                resource_id=link.resource_id if link else None,
                resource_name=link.resource.name if link else None,
                days_from_now=(session.session_date - today).days,
                has_pending_request=session.id in pending_session_ids,
            )
        )
    return output
