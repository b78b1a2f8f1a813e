from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from payables.core.deps import get_current_actor
from payables.core.rbac import Actor
from payables.db.session import get_db
from payables.models.enums import Role
from payables.schemas.user import RoleChange, RoleChangeCheck, UserRead
from payables.services import users as user_service
from payables.routers.common import unwrap

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=List[UserRead])
def list_users(
    request: Request,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> List[UserRead]:
    users = unwrap(user_service.list_users(db, actor=actor, include_inactive=include_inactive), request=request, actor=actor)
    return [UserRead.model_validate(user) for user in users]


@router.get("/{user_id}/role-check", response_model=RoleChangeCheck)
def role_check(
    user_id: int,
    role: Role = Query(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> RoleChangeCheck:
    return unwrap(user_service.validate_role_change(db, user_id=user_id, role=role, actor=actor))


@router.patch("/{user_id}/role", response_model=UserRead)
def change_role(
    user_id: int,
    payload: RoleChange,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> UserRead:
    result = user_service.change_user_role(db, user_id=user_id, role=payload.role, actor=actor)
    return UserRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{user_id}/deactivate", response_model=UserRead)
def deactivate_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> UserRead:
    result = user_service.deactivate_user(db, user_id=user_id, actor=actor)
    return UserRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{user_id}/reactivate", response_model=UserRead)
def reactivate_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> UserRead:
    result = user_service.reactivate_user(db, user_id=user_id, actor=actor)
    return UserRead.model_validate(unwrap(result, request=request, actor=actor))
