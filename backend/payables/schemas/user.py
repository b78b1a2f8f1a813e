from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from payables.models.enums import Role
from payables.schemas.base import ORMModel


class UserRead(ORMModel):
    id: int
    email: str
    full_name: Optional[str] = None
    role: Role
    is_active: bool
    deactivated_at: Optional[datetime] = None


class RoleChange(BaseModel):
    role: Role


class RoleChangeCheck(BaseModel):
    can_change: bool
    is_last_super_admin: bool
    reason: Optional[str] = None
