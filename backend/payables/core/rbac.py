from __future__ import annotations

from dataclasses import dataclass

from payables.core.errors import AuthorizationError
from payables.models.enums import Role


PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, resolved from a persisted user row."""

    id: int
    role: Role

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN


def actor_for_user(user) -> Actor:
    return Actor(id=user.id, role=_coerce_role(user.role))


def _coerce_role(role: Role | str) -> Role:
    if isinstance(role, Role):
        return role
    return Role(str(role).lower())


def require_admin(actor: Actor) -> None:
    if not actor.is_privileged:
        raise AuthorizationError("Admin access required")


def require_super_admin(actor: Actor) -> None:
    if not actor.is_super_admin:
        raise AuthorizationError("Super admin access required")
