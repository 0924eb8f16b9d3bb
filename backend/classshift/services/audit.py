from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from classshift.models.activity_log import ActivityLog
from classshift.models.user import User


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)
    return record


def list_activity(
    db: Session,
    *,
    entity_type: str,
    entity_ids: list[str] | set[str],
    action: str | None = None,
) -> list[ActivityLog]:
    if not entity_ids:
        return []
    query = select(ActivityLog).where(
        ActivityLog.entity_type == entity_type,
        ActivityLog.entity_id.in_(list(entity_ids)),
    )
    if action is not None:
        query = query.where(ActivityLog.action == action)
    return list(db.execute(query.order_by(ActivityLog.created_at)).scalars())
