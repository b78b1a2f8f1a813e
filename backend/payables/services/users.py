from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from payables.core.errors import NotFoundError, StateConflictError, ValidationError
from payables.core.rbac import Actor, require_super_admin
from payables.core.results import core_action
from payables.db.base import utcnow
from payables.models.enums import Role
from payables.models.user import User
from payables.schemas.user import RoleChangeCheck
from payables.services.activity import log_activity
from payables.services.guardian import check_last_super_admin


LAST_SUPER_ADMIN_MESSAGE = "Cannot change role of the last super admin"


def _get_user(db: Session, user_id: int, *, lock: bool = False) -> User:
    query = select(User).where(User.id == user_id)
    if lock:
        query = query.with_for_update()
    user = db.scalar(query)
    if not user:
        raise NotFoundError("User not found")
    return user


@core_action
def validate_role_change(db: Session, *, user_id: int, role: Role, actor: Actor) -> RoleChangeCheck:
    """Dry run of ``change_user_role``; nothing is written."""
    require_super_admin(actor)
    user = _get_user(db, user_id)
    if user.role != Role.SUPER_ADMIN or role == Role.SUPER_ADMIN:
        return RoleChangeCheck(can_change=True, is_last_super_admin=False)
    check = check_last_super_admin(db, user.id)
    return RoleChangeCheck(
        can_change=not check.blocked,
        is_last_super_admin=check.blocked,
        reason=check.reason if check.blocked else None,
    )


@core_action
def change_user_role(db: Session, *, user_id: int, role: Role, actor: Actor) -> User:
    require_super_admin(actor)
    user = _get_user(db, user_id, lock=True)
    if user.role == role:
        return user
    if user.role == Role.SUPER_ADMIN:
        check = check_last_super_admin(db, user.id)
        if check.blocked:
            raise StateConflictError(LAST_SUPER_ADMIN_MESSAGE, code="LAST_SUPER_ADMIN")

    previous = user.role
    user.role = role
    db.add(user)
    db.flush()
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="USER_ROLE_CHANGED",
        message=f"Role of {user.email} changed from {previous.value} to {role.value}",
        payload={"user_id": user.id, "from": previous.value, "to": role.value},
    )
    return user


@core_action
def deactivate_user(db: Session, *, user_id: int, actor: Actor, reason: Optional[str] = None) -> User:
    require_super_admin(actor)
    if user_id == actor.id:
        raise ValidationError("You cannot deactivate your own account")
    user = _get_user(db, user_id, lock=True)
    if not user.is_active:
        raise StateConflictError("User is already deactivated", code="ALREADY_DEACTIVATED")
    if user.role == Role.SUPER_ADMIN:
        check = check_last_super_admin(db, user.id)
        if check.blocked:
            raise StateConflictError("Cannot deactivate the last super admin", code="LAST_SUPER_ADMIN")

    user.is_active = False
    user.deactivated_at = utcnow()
    user.deactivated_by_user_id = actor.id
    db.add(user)
    db.flush()
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="USER_DEACTIVATED",
        message=f"User {user.email} deactivated",
        payload={"user_id": user.id, "reason": reason},
    )
    return user


@core_action
def reactivate_user(db: Session, *, user_id: int, actor: Actor) -> User:
    require_super_admin(actor)
    user = _get_user(db, user_id, lock=True)
    if user.is_active:
        raise StateConflictError("User is already active", code="ALREADY_ACTIVE")

    user.is_active = True
    user.deactivated_at = None
    user.deactivated_by_user_id = None
    db.add(user)
    db.flush()
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="USER_REACTIVATED",
        message=f"User {user.email} reactivated",
        payload={"user_id": user.id},
    )
    return user


@core_action
def list_users(db: Session, *, actor: Actor, include_inactive: bool = False) -> list[User]:
    require_super_admin(actor)
    query = select(User)
    if not include_inactive:
        query = query.where(User.is_active.is_(True))
    return list(db.scalars(query.order_by(User.email.asc())).all())
