from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from payables.core.errors import NotFoundError, StateConflictError
from payables.core.rbac import Actor, require_admin
from payables.core.results import core_action
from payables.models.master import Currency
from payables.services.activity import log_activity
from payables.services.guardian import check_last_active_currency


@core_action
def list_currencies(db: Session, *, actor: Actor, include_inactive: bool = False) -> list[Currency]:
    query = select(Currency)
    if not include_inactive:
        query = query.where(Currency.is_active.is_(True))
    return list(db.scalars(query.order_by(Currency.code.asc())).all())


@core_action
def toggle_currency(db: Session, *, currency_id: int, is_active: bool, actor: Actor) -> Currency:
    require_admin(actor)
    currency = db.scalar(select(Currency).where(Currency.id == currency_id).with_for_update())
    if not currency:
        raise NotFoundError("Currency not found")
    if currency.is_active == is_active:
        return currency
    if not is_active:
        check = check_last_active_currency(db, currency.id)
        if check.blocked:
            raise StateConflictError(check.reason, code="LAST_ACTIVE_CURRENCY")

    currency.is_active = is_active
    db.add(currency)
    db.flush()
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="CURRENCY_TOGGLED",
        message=f"Currency {currency.code} {'activated' if is_active else 'deactivated'}",
        payload={"currency_id": currency.id, "is_active": is_active},
    )
    return currency
