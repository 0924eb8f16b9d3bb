from datetime import timedelta

import pytest
from sqlalchemy import func, select, text

from classshift.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    ResourceConflictError,
    ScheduleConflictError,
    StateConflictError,
    ValidationError,
)
from classshift.models.activity_log import ActivityLog
from classshift.models.change_request import ChangeRequest, ChangeRequestStatus, ChangeRequestType
from classshift.models.class_session import ClassSession, SessionStatus
from classshift.models.notification import Notification
from classshift.models.teaching_assignment import AssignmentStatus, TeachingAssignment
from classshift.models.training_class import Modality, TrainingClass
from classshift.models.user import User
from classshift.schemas.change_request import ChangeRequestApprove, ChangeRequestCreate
from classshift.services import change_requests, session_store, teaching_assignments


def _user(db, user_id: str) -> User:
    return db.get(User, user_id)


def _create(session_id: str, reason: str = "Need a change", **details) -> ChangeRequestCreate:
    return ChangeRequestCreate.model_validate({"session_id": session_id, "reason": reason, "details": details})


def _session_count(db) -> int:
    return db.execute(select(func.count()).select_from(ClassSession)).scalar_one()


def _assignment_status(db, session_id: str, teacher_id: str) -> AssignmentStatus | None:
    assignment = teaching_assignments.get_assignment(db, session_id=session_id, teacher_id=teacher_id)
    return assignment.status if assignment else None


def _submit(db, campus, user_id: str | None = None, session_id: str | None = None, **details) -> ChangeRequest:
    return change_requests.submit_request(
        db,
        user=_user(db, user_id or campus.teacher_a_user_id),
        payload=_create(session_id or campus.session_id, **details),
    )


def test_every_request_type_has_handlers():
    assert set(change_requests.APPROVAL_HANDLERS) == set(ChangeRequestType)
    assert set(change_requests._SUBMISSION_HANDLERS) == set(ChangeRequestType)


def test_reschedule_creates_a_new_session_and_cancels_the_old_one(db_session, campus):
    new_date = campus.today + timedelta(days=3)
    request = _submit(
        db_session,
        campus,
        kind="reschedule",
        new_date=new_date.isoformat(),
        new_time_slot_id=campus.late_id,
        new_resource_id=campus.r1_id,
    )
    assert request.status == ChangeRequestStatus.pending

    approved = change_requests.approve_request(
        db_session,
        request_id=request.id,
        user=_user(db_session, campus.staff_user_id),
        payload=ChangeRequestApprove(note="Approved, room kept"),
    )

    assert approved.status == ChangeRequestStatus.approved
    assert approved.new_session_id is not None
    assert approved.decided_by_id == campus.staff_user_id
    assert approved.note == "Approved, room kept"

    old = db_session.get(ClassSession, campus.session_id)
    new = db_session.get(ClassSession, approved.new_session_id)
    assert old.status == SessionStatus.cancelled
    assert session_store.active_resource_link(db_session, old.id) is None
    assert new.status == SessionStatus.planned
    assert new.class_id == campus.english_id
    assert new.session_date == new_date
    assert new.time_slot_id == campus.late_id
    assert session_store.active_resource_link(db_session, new.id).resource_id == campus.r1_id
    assert _assignment_status(db_session, new.id, campus.teacher_a_id) == AssignmentStatus.scheduled
    assert sorted(session_store.roster_student_ids(db_session, new.id)) == sorted(campus.student_ids[:2])


def test_reschedule_approval_writes_back_staff_overrides(db_session, campus):
    request = _submit(
        db_session,
        campus,
        kind="reschedule",
        new_date=(campus.today + timedelta(days=3)).isoformat(),
        new_time_slot_id=campus.late_id,
        new_resource_id=campus.r1_id,
    )
    approved = change_requests.approve_request(
        db_session,
        request_id=request.id,
        user=_user(db_session, campus.admin_user_id),
        payload=ChangeRequestApprove(new_resource_id=campus.r2_id),
    )

    assert approved.new_resource_id == campus.r2_id
    assert session_store.active_resource_link(db_session, approved.new_session_id).resource_id == campus.r2_id


def test_failed_reschedule_leaves_everything_untouched(db_session, campus, make_session):
    target_date = campus.today + timedelta(days=3)
    blocker_id = make_session(
        class_id=campus.ielts_id,
        session_date=target_date,
        time_slot_id=campus.late_id,
        resource_id=campus.r1_id,
        teacher_id=campus.teacher_d_id,
    )
    request = _submit(
        db_session,
        campus,
        kind="reschedule",
        new_date=target_date.isoformat(),
        new_time_slot_id=campus.late_id,
        new_resource_id=campus.r1_id,
    )
    sessions_before = _session_count(db_session)

    with pytest.raises(ResourceConflictError) as exc_info:
        change_requests.approve_request(
            db_session,
            request_id=request.id,
            user=_user(db_session, campus.staff_user_id),
        )

    assert exc_info.value.details["resource_id"] == campus.r1_id
    assert _session_count(db_session) == sessions_before
    assert db_session.get(ClassSession, campus.session_id).status == SessionStatus.planned
    assert session_store.active_resource_link(db_session, campus.session_id).resource_id == campus.r1_id
    assert session_store.active_resource_link(db_session, blocker_id).resource_id == campus.r1_id
    stored = db_session.get(ChangeRequest, request.id)
    assert stored.status == ChangeRequestStatus.pending
    assert stored.new_session_id is None


def test_reschedule_refuses_slots_where_students_are_busy(db_session, campus, make_session):
    target_date = campus.today + timedelta(days=2)
    make_session(
        class_id=campus.ielts_id,
        session_date=target_date,
        time_slot_id=campus.late_id,
        resource_id=campus.r2_id,
        teacher_id=campus.teacher_d_id,
        student_ids=[campus.student_ids[1]],
    )
    request = _submit(
        db_session,
        campus,
        kind="reschedule",
        new_date=target_date.isoformat(),
        new_time_slot_id=campus.late_id,
        new_resource_id=campus.r1_id,
    )

    with pytest.raises(ScheduleConflictError) as exc_info:
        change_requests.approve_request(db_session, request_id=request.id, user=_user(db_session, campus.staff_user_id))
    assert exc_info.value.details["code"] == "SCHEDULE_CONFLICT"
    assert db_session.get(ClassSession, campus.session_id).status == SessionStatus.planned


def test_modality_change_moves_the_resource_link_only(db_session, campus):
    request = _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)

    approved = change_requests.approve_request(
        db_session,
        request_id=request.id,
        user=_user(db_session, campus.staff_user_id),
    )

    assert approved.status == ChangeRequestStatus.approved
    session = db_session.get(ClassSession, campus.session_id)
    assert session.status == SessionStatus.planned
    assert session.session_date == campus.today + timedelta(days=1)
    assert session.time_slot_id == campus.morning_id
    assert session_store.active_resource_link(db_session, campus.session_id).resource_id == campus.z1_id
    assert db_session.get(TrainingClass, campus.english_id).modality == Modality.offline


def test_modality_change_conflict_keeps_the_original_room(db_session, campus, make_session):
    request = _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)
    other_id = make_session(
        class_id=campus.ielts_id,
        session_date=campus.today + timedelta(days=1),
        time_slot_id=campus.morning_id,
        resource_id=campus.z1_id,
        teacher_id=None,
    )

    with pytest.raises(ResourceConflictError):
        change_requests.approve_request(
            db_session,
            request_id=request.id,
            user=_user(db_session, campus.staff_user_id),
        )

    assert session_store.active_resource_link(db_session, campus.session_id).resource_id == campus.r1_id
    assert session_store.active_resource_link(db_session, other_id).resource_id == campus.z1_id
    assert db_session.get(ChangeRequest, request.id).status == ChangeRequestStatus.pending


def test_competing_modality_changes_for_one_resource(db_session, campus):
    first = _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)
    second = _submit(
        db_session,
        campus,
        user_id=campus.teacher_b_user_id,
        session_id=campus.parallel_session_id,
        kind="modality_change",
        new_resource_id=campus.z1_id,
    )
    staff = _user(db_session, campus.staff_user_id)

    change_requests.approve_request(db_session, request_id=first.id, user=staff)
    with pytest.raises(ResourceConflictError):
        change_requests.approve_request(db_session, request_id=second.id, user=staff)

    assert session_store.active_resource_link(db_session, campus.session_id).resource_id == campus.z1_id
    assert session_store.active_resource_link(db_session, campus.parallel_session_id).resource_id == campus.r2_id
    assert db_session.get(ChangeRequest, second.id).status == ChangeRequestStatus.pending


def test_modality_change_needs_a_resource_by_approval_time(db_session, campus):
    request = _submit(db_session, campus, kind="modality_change")

    with pytest.raises(ValidationError):
        change_requests.approve_request(db_session, request_id=request.id, user=_user(db_session, campus.staff_user_id))

    approved = change_requests.approve_request(
        db_session,
        request_id=request.id,
        user=_user(db_session, campus.staff_user_id),
        payload=ChangeRequestApprove(new_resource_id=campus.z2_id),
    )
    assert approved.new_resource_id == campus.z2_id


def test_swap_decline_renominate_and_confirm(db_session, campus):
    staff = _user(db_session, campus.staff_user_id)
    request = _submit(db_session, campus, kind="swap", replacement_teacher_id=campus.teacher_c_id)

    waiting = change_requests.approve_request(db_session, request_id=request.id, user=staff)
    assert waiting.status == ChangeRequestStatus.waiting_confirm
    assert waiting.replacement_teacher_id == campus.teacher_c_id
    # Nothing moves until the nominee answers.
    assert _assignment_status(db_session, campus.session_id, campus.teacher_a_id) == AssignmentStatus.scheduled
    assert _assignment_status(db_session, campus.session_id, campus.teacher_c_id) is None

    declined = change_requests.decline_swap(
        db_session,
        request_id=request.id,
        user=_user(db_session, campus.teacher_c_user_id),
        reason="busy",
    )
    assert declined.status == ChangeRequestStatus.pending
    assert declined.replacement_teacher_id is None
    assert declined.note == f"DECLINED_BY_TEACHER_ID_{campus.teacher_c_id}: busy"
    assert change_requests.declined_teacher_ids(declined.note) == {campus.teacher_c_id}

    renominated = change_requests.approve_request(
        db_session,
        request_id=request.id,
        user=staff,
        payload=ChangeRequestApprove(replacement_teacher_id=campus.teacher_d_id),
    )
    assert renominated.status == ChangeRequestStatus.waiting_confirm
    assert renominated.replacement_teacher_id == campus.teacher_d_id
    assert campus.teacher_c_id not in (renominated.note or "")

    confirmed = change_requests.confirm_swap(
        db_session,
        request_id=request.id,
        user=_user(db_session, campus.teacher_d_user_id),
    )
    assert confirmed.status == ChangeRequestStatus.approved
    assert _assignment_status(db_session, campus.session_id, campus.teacher_a_id) == AssignmentStatus.on_leave
    assert _assignment_status(db_session, campus.session_id, campus.teacher_d_id) == AssignmentStatus.substituted
    assert teaching_assignments.active_teacher_ids(db_session, campus.session_id) == [campus.teacher_d_id]


def test_swap_nominee_must_be_free(db_session, campus):
    request = _submit(db_session, campus, kind="swap", replacement_teacher_id=campus.teacher_b_id)

    with pytest.raises(ScheduleConflictError):
        change_requests.approve_request(db_session, request_id=request.id, user=_user(db_session, campus.staff_user_id))
    assert db_session.get(ChangeRequest, request.id).status == ChangeRequestStatus.pending


def test_only_the_nominee_can_answer_a_swap(db_session, campus):
    request = _submit(db_session, campus, kind="swap", replacement_teacher_id=campus.teacher_c_id)

    with pytest.raises(StateConflictError):
        change_requests.confirm_swap(db_session, request_id=request.id, user=_user(db_session, campus.teacher_c_user_id))

    change_requests.approve_request(db_session, request_id=request.id, user=_user(db_session, campus.staff_user_id))
    with pytest.raises(AuthorizationError):
        change_requests.confirm_swap(db_session, request_id=request.id, user=_user(db_session, campus.teacher_d_user_id))
    with pytest.raises(AuthorizationError):
        change_requests.decline_swap(
            db_session,
            request_id=request.id,
            user=_user(db_session, campus.teacher_a_user_id),
            reason="not me",
        )
    assert db_session.get(ChangeRequest, request.id).status == ChangeRequestStatus.waiting_confirm


def test_confirm_rejects_non_swap_requests(db_session, campus):
    request = _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)

    with pytest.raises(ValidationError) as exc_info:
        change_requests.confirm_swap(db_session, request_id=request.id, user=_user(db_session, campus.teacher_c_user_id))
    assert exc_info.value.details["code"] == "INVALID_REQUEST_TYPE"


def test_approving_twice_is_rejected_without_side_effects(db_session, campus):
    request = _submit(
        db_session,
        campus,
        kind="reschedule",
        new_date=(campus.today + timedelta(days=3)).isoformat(),
        new_time_slot_id=campus.late_id,
        new_resource_id=campus.r1_id,
    )
    staff = _user(db_session, campus.staff_user_id)
    first = change_requests.approve_request(db_session, request_id=request.id, user=staff)
    new_session_id = first.new_session_id
    sessions_after_first = _session_count(db_session)

    with pytest.raises(StateConflictError):
        change_requests.approve_request(db_session, request_id=request.id, user=staff)
    with pytest.raises(StateConflictError):
        change_requests.reject_request(db_session, request_id=request.id, user=staff, reason="too late")

    assert _session_count(db_session) == sessions_after_first
    stored = db_session.get(ChangeRequest, request.id)
    assert stored.status == ChangeRequestStatus.approved
    assert stored.new_session_id == new_session_id


def test_reject_records_the_reason(db_session, campus):
    request = _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)

    rejected = change_requests.reject_request(
        db_session,
        request_id=request.id,
        user=_user(db_session, campus.staff_user_id),
        reason="  Room is fine  ",
    )

    assert rejected.status == ChangeRequestStatus.rejected
    assert rejected.note == "Room is fine"
    assert rejected.decided_by_id == campus.staff_user_id
    assert session_store.active_resource_link(db_session, campus.session_id).resource_id == campus.r1_id


def test_concurrent_decision_is_reported_as_state_conflict(db_session, campus):
    request = _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)
    db_session.get(ChangeRequest, request.id)
    # Another writer decides the request behind this session's back.
    db_session.execute(
        text("UPDATE change_requests SET version = version + 1 WHERE id = :id"),
        {"id": request.id},
    )

    with pytest.raises(StateConflictError) as exc_info:
        change_requests.reject_request(
            db_session,
            request_id=request.id,
            user=_user(db_session, campus.staff_user_id),
            reason="duplicate",
        )
    assert exc_info.value.details["code"] == "CONCURRENT_DECISION"
    assert request.id in exc_info.value.message

    db_session.expire_all()
    assert db_session.get(ChangeRequest, request.id).status == ChangeRequestStatus.pending


def test_decisions_require_staff(db_session, campus):
    request = _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)

    with pytest.raises(AuthorizationError):
        change_requests.approve_request(db_session, request_id=request.id, user=_user(db_session, campus.teacher_a_user_id))
    with pytest.raises(AuthorizationError):
        change_requests.reject_request(
            db_session,
            request_id=request.id,
            user=_user(db_session, campus.teacher_b_user_id),
            reason="no",
        )


def test_overrides_must_match_the_request_type(db_session, campus):
    request = _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)

    with pytest.raises(ValidationError):
        change_requests.approve_request(
            db_session,
            request_id=request.id,
            user=_user(db_session, campus.staff_user_id),
            payload=ChangeRequestApprove(replacement_teacher_id=campus.teacher_c_id),
        )
    assert db_session.get(ChangeRequest, request.id).status == ChangeRequestStatus.pending


def test_unknown_request_is_not_found(db_session, campus):
    with pytest.raises(NotFoundError):
        change_requests.approve_request(db_session, request_id="nope", user=_user(db_session, campus.staff_user_id))


def test_submit_requires_the_active_teacher(db_session, campus):
    with pytest.raises(ValidationError) as exc_info:
        _submit(db_session, campus, user_id=campus.teacher_c_user_id, kind="modality_change")
    assert exc_info.value.details["code"] == "TEACHER_DOES_NOT_OWN_SESSION"

    with pytest.raises(NotFoundError):
        _submit(db_session, campus, user_id=campus.staff_user_id, kind="modality_change")


def test_submit_requires_a_planned_session_inside_the_window(db_session, campus, make_session):
    far_id = make_session(
        class_id=campus.english_id,
        session_date=campus.today + timedelta(days=10),
        time_slot_id=campus.morning_id,
        resource_id=None,
        teacher_id=campus.teacher_a_id,
    )
    with pytest.raises(ValidationError) as exc_info:
        _submit(db_session, campus, session_id=far_id, kind="modality_change")
    assert exc_info.value.details["code"] == "SESSION_NOT_IN_TIME_WINDOW"

    done_id = make_session(
        class_id=campus.english_id,
        session_date=campus.today + timedelta(days=2),
        time_slot_id=campus.morning_id,
        resource_id=None,
        teacher_id=campus.teacher_a_id,
        status=SessionStatus.done,
    )
    with pytest.raises(ValidationError) as exc_info:
        _submit(db_session, campus, session_id=done_id, kind="modality_change")
    assert exc_info.value.details["code"] == "SESSION_NOT_PLANNED"


def test_submit_rejects_a_duplicate_open_request(db_session, campus):
    _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)

    with pytest.raises(StateConflictError) as exc_info:
        _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z2_id)
    assert exc_info.value.details["code"] == "TEACHER_REQUEST_DUPLICATE"

    # A different kind for the same session is still allowed.
    swap = _submit(db_session, campus, kind="swap")
    assert swap.request_type == ChangeRequestType.swap


@pytest.mark.parametrize(
    ("details", "code"),
    [
        ({"kind": "modality_change", "new_resource_id": "R2"}, "INVALID_RESOURCE_FOR_MODALITY"),
        ({"kind": "modality_change", "new_resource_id": "TINY"}, "RESOURCE_CAPACITY_INSUFFICIENT"),
        ({"kind": "modality_change", "new_resource_id": "FOREIGN"}, "RESOURCE_BRANCH_MISMATCH"),
        ({"kind": "swap", "replacement_teacher_id": "SELF"}, "INVALID_REPLACEMENT"),
        ({"kind": "reschedule", "new_date": 30, "new_time_slot_id": "LATE", "new_resource_id": "R1"},
         "NEW_DATE_NOT_IN_TIME_WINDOW"),
        ({"kind": "reschedule", "new_date": 2, "new_time_slot_id": "FOREIGN_SLOT", "new_resource_id": "R1"},
         "TIMESLOT_BRANCH_MISMATCH"),
    ],
)
def test_submit_validates_details_against_the_session(db_session, campus, details, code):
    aliases = {
        "R1": campus.r1_id,
        "R2": campus.r2_id,
        "TINY": campus.tiny_id,
        "FOREIGN": campus.foreign_room_id,
        "SELF": campus.teacher_a_id,
        "LATE": campus.late_id,
        "FOREIGN_SLOT": campus.foreign_slot_id,
    }
    resolved = {key: aliases.get(value, value) if isinstance(value, str) else value for key, value in details.items()}
    if "new_date" in resolved:
        resolved["new_date"] = (campus.today + timedelta(days=resolved["new_date"])).isoformat()

    with pytest.raises(ValidationError) as exc_info:
        _submit(db_session, campus, **resolved)
    assert exc_info.value.details["code"] == code
    assert db_session.execute(select(func.count()).select_from(ChangeRequest)).scalar_one() == 0


def test_transitions_leave_an_audit_trail_and_notifications(db_session, campus):
    request = _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)
    change_requests.approve_request(db_session, request_id=request.id, user=_user(db_session, campus.staff_user_id))

    actions = db_session.execute(
        select(ActivityLog.action).where(ActivityLog.entity_id == request.id).order_by(ActivityLog.created_at)
    ).scalars()
    assert set(actions) == {"change_request.submit", "change_request.approve"}

    staff_inbox = db_session.execute(
        select(Notification.title).where(Notification.user_id == campus.staff_user_id)
    ).scalars()
    teacher_inbox = db_session.execute(
        select(Notification.title).where(Notification.user_id == campus.teacher_a_user_id)
    ).scalars()
    assert "New Teacher Request" in set(staff_inbox)
    assert "Teacher Request Approved" in set(teacher_inbox)


def test_teacher_and_staff_queries(db_session, campus):
    swap = _submit(db_session, campus, kind="swap", replacement_teacher_id=campus.teacher_c_id)
    staff = _user(db_session, campus.staff_user_id)
    change_requests.approve_request(db_session, request_id=swap.id, user=staff)

    own = change_requests.list_requests_for_teacher(db_session, user=_user(db_session, campus.teacher_a_user_id))
    nominated = change_requests.list_requests_for_teacher(db_session, user=_user(db_session, campus.teacher_c_user_id))
    unrelated = change_requests.list_requests_for_teacher(db_session, user=_user(db_session, campus.teacher_b_user_id))
    assert [item.id for item in own] == [swap.id]
    assert [item.id for item in nominated] == [swap.id]
    assert unrelated == []

    waiting = change_requests.list_requests_for_staff(
        db_session, user=staff, status=ChangeRequestStatus.waiting_confirm
    )
    pending = change_requests.list_requests_for_staff(db_session, user=staff, status=ChangeRequestStatus.pending)
    assert [item.id for item in waiting] == [swap.id]
    assert pending == []

    with pytest.raises(AuthorizationError):
        change_requests.get_request(db_session, request_id=swap.id, user=_user(db_session, campus.teacher_b_user_id))
    assert change_requests.get_request(db_session, request_id=swap.id, user=staff).id == swap.id


def test_list_teacher_sessions_flags_open_requests(db_session, campus):
    teacher = _user(db_session, campus.teacher_a_user_id)
    sessions = change_requests.list_teacher_sessions(db_session, user=teacher)
    assert [item.session_id for item in sessions] == [campus.session_id]
    assert sessions[0].has_pending_request is False
    assert sessions[0].resource_id == campus.r1_id
    assert sessions[0].days_from_now == 1

    _submit(db_session, campus, kind="modality_change", new_resource_id=campus.z1_id)
    flagged = change_requests.list_teacher_sessions(
        db_session, user=teacher, on_date=campus.today + timedelta(days=1)
    )
    assert flagged[0].has_pending_request is True
    assert change_requests.list_teacher_sessions(db_session, user=teacher, on_date=campus.today + timedelta(days=2)) == []

    with pytest.raises(ValidationError):
        change_requests.list_teacher_sessions(db_session, user=teacher, on_date=campus.today - timedelta(days=1))


def test_confirm_swap_requires_the_original_assignment(db_session, campus):
    request = _submit(db_session, campus, kind="swap", replacement_teacher_id=campus.teacher_c_id)
    change_requests.approve_request(db_session, request_id=request.id, user=_user(db_session, campus.staff_user_id))
    db_session.execute(
        text("DELETE FROM teaching_assignments WHERE session_id = :session_id AND teacher_id = :teacher_id"),
        {"session_id": campus.session_id, "teacher_id": campus.teacher_a_id},
    )
    db_session.commit()
    db_session.expire_all()

    with pytest.raises(NotFoundError):
        change_requests.confirm_swap(db_session, request_id=request.id, user=_user(db_session, campus.teacher_c_user_id))
    assert db_session.execute(
        select(func.count()).select_from(TeachingAssignment).where(TeachingAssignment.session_id == campus.session_id)
    ).scalar_one() == 0
