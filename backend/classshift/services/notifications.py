from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classshift.models.notification import Notification, NotificationType
from classshift.models.user import User, UserRole

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.workflow,
    entity_id: str | None = None,
) -> Notification | None:
    record = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        entity_id=entity_id,
    )
    # Delivery is best effort: a failed insert must not abort the surrounding unit of work.
    try:
        with db.begin_nested():
            db.add(record)
    except SQLAlchemyError:
        logger.warning("Unable to store notification %r for user %s", title, user_id, exc_info=True)
        return None
    return record


def notify_users(
    db: Session,
    *,
    user_ids: list[str] | set[str] | tuple[str, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.workflow,
    entity_id: str | None = None,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    requested_ids = [item for item in dict.fromkeys(user_ids) if item and item != exclude_user_id]
    if not requested_ids:
        return []

    recipients = list(
        db.execute(
            select(User).where(
                User.id.in_(requested_ids),
                User.is_active.is_(True),
            )
        ).scalars()
    )
    results: list[Notification] = []
    for recipient in recipients:
        record = create_notification(
            db,
            user_id=recipient.id,
            title=title,
            message=message,
            notification_type=notification_type,
            entity_id=entity_id,
        )
        if record is not None:
            results.append(record)
    return results


def notify_roles(
    db: Session,
    *,
    roles: list[UserRole] | set[UserRole] | frozenset[UserRole] | tuple[UserRole, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.workflow,
    entity_id: str | None = None,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    if not roles:
        return []
    recipient_ids = db.execute(
        select(User.id).where(
            User.role.in_(list(roles)),
            User.is_active.is_(True),
        )
    ).scalars()
    return notify_users(
        db,
        user_ids=list(recipient_ids),
        title=title,
        message=message,
        notification_type=notification_type,
        entity_id=entity_id,
        exclude_user_id=exclude_user_id,
    )
