from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from payables.core.deps import get_current_actor
from payables.core.rbac import Actor
from payables.db.session import get_db
from payables.schemas.invoice import ReasonPayload
from payables.schemas.payment import PaymentRead
from payables.services import payments as payment_service
from payables.routers.common import unwrap

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/{payment_id}/approve", response_model=PaymentRead)
def approve_payment(
    payment_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> PaymentRead:
    result = payment_service.approve_payment(db, payment_id=payment_id, actor=actor)
    return PaymentRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{payment_id}/reject", response_model=PaymentRead)
def reject_payment(
    payment_id: int,
    payload: ReasonPayload,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> PaymentRead:
    result = payment_service.reject_payment(db, payment_id=payment_id, reason=payload.reason, actor=actor)
    return PaymentRead.model_validate(unwrap(result, request=request, actor=actor))
