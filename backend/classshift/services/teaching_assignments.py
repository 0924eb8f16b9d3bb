from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from classshift.models.teaching_assignment import (
    ACTIVE_ASSIGNMENT_STATUSES,
    AssignmentStatus,
    TeachingAssignment,
)

logger = logging.getLogger(__name__)


def get_assignment(db: Session, *, session_id: str, teacher_id: str) -> TeachingAssignment | None:
    return db.get(TeachingAssignment, (session_id, teacher_id))


def upsert_assignment(
    db: Session,
    *,
    session_id: str,
    teacher_id: str,
    status: AssignmentStatus,
) -> TeachingAssignment:
    assignment = get_assignment(db, session_id=session_id, teacher_id=teacher_id)
    if assignment is None:
        assignment = TeachingAssignment(session_id=session_id, teacher_id=teacher_id, status=status)
        db.add(assignment)
        db.flush()
        logger.info("Assigned teacher %s to session %s as %s", teacher_id, session_id, status.value)
        return assignment
    if assignment.status == status:
        return assignment
    logger.info(
        "Teacher %s on session %s moved from %s to %s",
        teacher_id,
        session_id,
        assignment.status.value,
        status.value,
    )
    assignment.status = status
    db.flush()
    return assignment


def is_active_assignee(db: Session, *, session_id: str, teacher_id: str) -> bool:
    assignment = get_assignment(db, session_id=session_id, teacher_id=teacher_id)
    return assignment is not None and assignment.status in ACTIVE_ASSIGNMENT_STATUSES


def active_teacher_ids(db: Session, session_id: str) -> list[str]:
    return list(
        db.execute(
            select(TeachingAssignment.teacher_id).where(
                TeachingAssignment.session_id == session_id,
                TeachingAssignment.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
            )
        ).scalars()
    )
