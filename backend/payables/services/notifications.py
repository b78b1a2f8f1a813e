"""In-app notifications.

Core operations only queue notifications; rows are written after the owning
transaction commits so a delivery failure can never undo a state change.
"""
from __future__ import annotations

from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from payables.core.results import after_commit
from payables.models.enums import NotificationType, Role
from payables.models.notification import Notification
from payables.models.user import User


ADMIN_ROLES: tuple[Role, ...] = (Role.ADMIN, Role.SUPER_ADMIN)


def create_notification(
    db: Session,
    *,
    user_id: int,
    notif_type: NotificationType,
    message: str,
    payload: Optional[dict] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=notif_type,
        message=message,
        payload_json=payload,
    )
    db.add(notification)
    db.flush()
    return notification


def notify_roles(
    db: Session,
    *,
    roles: Sequence[Role],
    notif_type: NotificationType,
    message: str,
    payload: Optional[dict] = None,
    exclude_user_ids: Optional[Iterable[int]] = None,
) -> list[Notification]:
    exclude_set = set(exclude_user_ids or [])
    users = db.scalars(select(User).where(User.role.in_(list(roles)), User.is_active.is_(True))).all()
    created: list[Notification] = []
    for user in users:
        if user.id in exclude_set:
            continue
        created.append(
            create_notification(
                db,
                user_id=user.id,
                notif_type=notif_type,
                message=message,
                payload=payload,
            )
        )
    return created


def notify_user_after_commit(
    db: Session,
    *,
    user_id: Optional[int],
    notif_type: NotificationType,
    message: str,
    payload: Optional[dict] = None,
) -> None:
    if user_id is None:
        return

    def deliver(session: Session) -> None:
        create_notification(session, user_id=user_id, notif_type=notif_type, message=message, payload=payload)
        session.commit()

    deliver.__name__ = f"notify_{notif_type.value}"
    after_commit(db, deliver)


def notify_admins_after_commit(
    db: Session,
    *,
    notif_type: NotificationType,
    message: str,
    payload: Optional[dict] = None,
    exclude_user_ids: Optional[Iterable[int]] = None,
) -> None:
    excluded = list(exclude_user_ids or [])

    def deliver(session: Session) -> None:
        notify_roles(
            session,
            roles=ADMIN_ROLES,
            notif_type=notif_type,
            message=message,
            payload=payload,
            exclude_user_ids=excluded,
        )
        session.commit()

    deliver.__name__ = f"notify_admins_{notif_type.value}"
    after_commit(db, deliver)
