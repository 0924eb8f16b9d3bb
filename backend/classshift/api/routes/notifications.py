from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from classshift.api.deps import get_current_user, get_db
from classshift.core.exceptions import NotFoundError
from classshift.models.notification import Notification, NotificationType
from classshift.models.user import User
from classshift.schemas.notification import NotificationOut
from classshift.services.audit import log_activity

router = APIRouter()


def _owned_notification(db: Session, *, notification_id: str, user: User) -> Notification:
    notification = db.get(Notification, notification_id)
    # Someone else's notification is reported as missing rather than forbidden.
    if notification is None or notification.user_id != user.id:
        raise NotFoundError("Notification", notification_id)
    return notification


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    notification_type: NotificationType | None = Query(default=None),
    is_read: bool | None = Query(default=None),
    entity_id: str | None = Query(default=None, max_length=36),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    """Newest first. `entity_id` narrows to one change request or rescheduled session."""
    filters = [Notification.user_id == current_user.id]
    if notification_type is not None:
        filters.append(Notification.notification_type == notification_type)
    if is_read is not None:
        filters.append(Notification.is_read.is_(is_read))
    if entity_id:
        filters.append(Notification.entity_id == entity_id)
    query = (
        select(Notification)
        .where(*filters)
        .order_by(Notification.created_at.desc(), Notification.id)
        .offset(offset)
        .limit(limit)
    )
    return list(db.execute(query).scalars())


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationOut:
    notification = _owned_notification(db, notification_id=notification_id, user=current_user)
    if not notification.is_read:
        notification.is_read = True
        log_activity(
            db,
            user=current_user,
            action="notification.read",
            entity_type="notification",
            entity_id=notification.id,
            details={"related_entity_id": notification.entity_id},
        )
        db.commit()
        db.refresh(notification)
    return notification
