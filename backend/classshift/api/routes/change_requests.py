from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from classshift.api.deps import get_current_user, get_db, require_staff, require_teacher
from classshift.models.change_request import ChangeRequest, ChangeRequestStatus
from classshift.models.resource import Resource
from classshift.models.teacher import Teacher
from classshift.models.time_slot import TimeSlotTemplate
from classshift.models.user import User
from classshift.schemas.change_request import (
    ChangeRequestApprove,
    ChangeRequestCreate,
    ChangeRequestListItem,
    ChangeRequestOut,
    ChangeRequestReject,
    SwapDecline,
)
from classshift.schemas.schedule import (
    ResourceSuggestionOut,
    SwapCandidateOut,
    TeacherSessionOut,
    TimeSlotSuggestionOut,
)
from classshift.services import change_requests, suggestions

router = APIRouter()


def _hydrate_change_requests(db: Session, requests: list[ChangeRequest]) -> list[ChangeRequestOut]:
    if not requests:
        return []

    time_slot_ids = {item.new_time_slot_id for item in requests if item.new_time_slot_id}
    resource_ids = {item.new_resource_id for item in requests if item.new_resource_id}
    replacement_ids = {item.replacement_teacher_id for item in requests if item.replacement_teacher_id}
    time_slots = {
        item.id: item
        for item in db.execute(select(TimeSlotTemplate).where(TimeSlotTemplate.id.in_(time_slot_ids))).scalars()
    }
    resources = {
        item.id: item for item in db.execute(select(Resource).where(Resource.id.in_(resource_ids))).scalars()
    }
    replacements = {
        item.id: item
        for item in db.execute(select(Teacher).where(Teacher.id.in_(replacement_ids))).unique().scalars()
    }

    output: list[ChangeRequestOut] = []
    for request in requests:
        time_slot = time_slots.get(request.new_time_slot_id)
        resource = resources.get(request.new_resource_id)
        replacement = replacements.get(request.replacement_teacher_id)
        output.append(
            ChangeRequestOut(
                id=request.id,
                request_type=request.request_type,
                status=request.status,
                session_id=request.session_id,
                class_code=request.session.training_class.code,
                session_date=request.session.session_date,
                teacher_id=request.teacher_id,
                teacher_name=request.teacher.full_name,
                teacher_email=request.teacher.email,
                request_reason=request.request_reason,
                new_date=request.new_date,
                new_time_slot_id=request.new_time_slot_id,
                new_time_slot_name=time_slot.label if time_slot else None,
                new_resource_id=request.new_resource_id,
                new_resource_name=resource.name if resource else None,
                new_session_id=request.new_session_id,
                replacement_teacher_id=request.replacement_teacher_id,
                replacement_teacher_name=replacement.full_name if replacement else None,
                replacement_teacher_email=replacement.email if replacement else None,
                note=request.note,
                submitted_at=request.submitted_at,
                decided_at=request.decided_at,
                decided_by_id=request.decided_by_id,
            )
        )
    return output


def _list_item(request: ChangeRequest) -> ChangeRequestListItem:
    return ChangeRequestListItem(
        id=request.id,
        request_type=request.request_type,
        status=request.status,
        session_id=request.session_id,
        session_date=request.session.session_date,
        class_code=request.session.training_class.code,
        class_name=request.session.training_class.name,
        teacher_id=request.teacher_id,
        teacher_name=request.teacher.full_name,
        teacher_email=request.teacher.email,
        request_reason=request.request_reason,
        submitted_at=request.submitted_at,
        decided_at=request.decided_at,
    )


@router.post("", response_model=ChangeRequestOut, status_code=201)
def submit_change_request(
    payload: ChangeRequestCreate,
    current_user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> ChangeRequestOut:
    request = change_requests.submit_request(db, user=current_user, payload=payload)
    return _hydrate_change_requests(db, [request])[0]


@router.get("/me", response_model=list[ChangeRequestListItem])
def list_my_change_requests(
    status: ChangeRequestStatus | None = Query(default=None),
    current_user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> list[ChangeRequestListItem]:
    requests = change_requests.list_requests_for_teacher(db, user=current_user, status=status)
    return [_list_item(item) for item in requests]


@router.get("/my-sessions", response_model=list[TeacherSessionOut])
def list_my_sessions(
    on_date: date | None = Query(default=None, alias="date"),
    current_user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> list[TeacherSessionOut]:
    return change_requests.list_teacher_sessions(db, user=current_user, on_date=on_date)


@router.get("/staff", response_model=list[ChangeRequestListItem])
def list_change_requests_for_staff(
    status: ChangeRequestStatus | None = Query(default=None),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> list[ChangeRequestListItem]:
    requests = change_requests.list_requests_for_staff(db, user=current_user, status=status)
    return [_list_item(item) for item in requests]


@router.get("/sessions/{session_id}/reschedule/slots", response_model=list[TimeSlotSuggestionOut])
def suggest_reschedule_slots(
    session_id: str,
    on_date: date = Query(alias="date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimeSlotSuggestionOut]:
    return suggestions.suggest_time_slots(db, user=current_user, session_id=session_id, on_date=on_date)


@router.get("/sessions/{session_id}/reschedule/resources", response_model=list[ResourceSuggestionOut])
def suggest_reschedule_resources(
    session_id: str,
    on_date: date = Query(alias="date"),
    time_slot_id: str = Query(min_length=1, max_length=36),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ResourceSuggestionOut]:
    return suggestions.suggest_resources(
        db,
        user=current_user,
        session_id=session_id,
        on_date=on_date,
        time_slot_id=time_slot_id,
    )


@router.get("/sessions/{session_id}/modality/resources", response_model=list[ResourceSuggestionOut])
def suggest_modality_resources(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ResourceSuggestionOut]:
    return suggestions.suggest_modality_resources(db, user=current_user, session_id=session_id)


@router.get("/sessions/{session_id}/swap/candidates", response_model=list[SwapCandidateOut])
def suggest_swap_candidates(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SwapCandidateOut]:
    return suggestions.suggest_swap_candidates(db, user=current_user, session_id=session_id)


@router.get("/{request_id}", response_model=ChangeRequestOut)
def get_change_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ChangeRequestOut:
    request = change_requests.get_request(db, request_id=request_id, user=current_user)
    return _hydrate_change_requests(db, [request])[0]


@router.patch("/{request_id}/approve", response_model=ChangeRequestOut)
def approve_change_request(
    request_id: str,
    payload: ChangeRequestApprove | None = None,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> ChangeRequestOut:
    request = change_requests.approve_request(db, request_id=request_id, user=current_user, payload=payload)
    return _hydrate_change_requests(db, [request])[0]


@router.patch("/{request_id}/reject", response_model=ChangeRequestOut)
def reject_change_request(
    request_id: str,
    payload: ChangeRequestReject,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> ChangeRequestOut:
    request = change_requests.reject_request(db, request_id=request_id, user=current_user, reason=payload.reason)
    return _hydrate_change_requests(db, [request])[0]


@router.patch("/{request_id}/confirm", response_model=ChangeRequestOut)
def confirm_swap_request(
    request_id: str,
    current_user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> ChangeRequestOut:
    request = change_requests.confirm_swap(db, request_id=request_id, user=current_user)
    return _hydrate_change_requests(db, [request])[0]


@router.patch("/{request_id}/decline", response_model=ChangeRequestOut)
def decline_swap_request(
    request_id: str,
    payload: SwapDecline,
    current_user: User = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> ChangeRequestOut:
    request = change_requests.decline_swap(db, request_id=request_id, user=current_user, reason=payload.reason)
    return _hydrate_change_requests(db, [request])[0]
