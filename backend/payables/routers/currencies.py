from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from payables.core.deps import get_current_actor
from payables.core.rbac import Actor
from payables.db.session import get_db
from payables.schemas.currency import CurrencyRead, CurrencyToggle
from payables.services import currencies as currency_service
from payables.routers.common import unwrap

router = APIRouter(prefix="/api/currencies", tags=["currencies"])


@router.get("", response_model=List[CurrencyRead])
def list_currencies(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> List[CurrencyRead]:
    currencies = unwrap(currency_service.list_currencies(db, actor=actor, include_inactive=include_inactive))
    return [CurrencyRead.model_validate(currency) for currency in currencies]


@router.patch("/{currency_id}", response_model=CurrencyRead)
def toggle_currency(
    currency_id: int,
    payload: CurrencyToggle,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> CurrencyRead:
    result = currency_service.toggle_currency(db, currency_id=currency_id, is_active=payload.is_active, actor=actor)
    return CurrencyRead.model_validate(unwrap(result, request=request, actor=actor))
