"""Keep at least one active holder of a required capability.

The holder count is read with a row lock inside the caller's transaction, so
two concurrent removals cannot both observe two holders and both proceed.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from payables.models.enums import Role
from payables.models.master import Currency
from payables.models.user import User


@dataclass(frozen=True)
class GuardianCheck:
    blocked: bool
    applicable: bool
    holder_count: int
    reason: Optional[str] = None


def would_empty_required_set(
    db: Session,
    *,
    model: Any,
    holder_conditions: Iterable[Any],
    candidate_id: int,
    reason: Optional[str] = None,
) -> GuardianCheck:
    """Report whether removing ``candidate_id`` leaves no row matching ``holder_conditions``.

    ``applicable`` is False when the candidate is not currently a holder.
    """
    holder_ids = list(
        db.scalars(select(model.id).where(*holder_conditions).with_for_update()).all()
    )
    if candidate_id not in holder_ids:
        return GuardianCheck(blocked=False, applicable=False, holder_count=len(holder_ids))
    if len(holder_ids) == 1:
        return GuardianCheck(blocked=True, applicable=True, holder_count=1, reason=reason)
    return GuardianCheck(blocked=False, applicable=True, holder_count=len(holder_ids))


def check_last_super_admin(db: Session, user_id: int) -> GuardianCheck:
    return would_empty_required_set(
        db,
        model=User,
        holder_conditions=(User.role == Role.SUPER_ADMIN, User.is_active.is_(True)),
        candidate_id=user_id,
        reason="Cannot change role of the last super admin",
    )


def check_last_active_currency(db: Session, currency_id: int) -> GuardianCheck:
    return would_empty_required_set(
        db,
        model=Currency,
        holder_conditions=(Currency.is_active.is_(True),),
        candidate_id=currency_id,
        reason="Cannot deactivate the last active currency. At least one currency must remain active.",
    )
