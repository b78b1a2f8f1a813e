from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from payables.core.deps import get_current_actor
from payables.core.rbac import Actor
from payables.db.session import get_db
from payables.models.enums import VendorStatus
from payables.schemas.invoice import ReasonPayload
from payables.schemas.vendor import VendorCreate, VendorRead, VendorRejectionRead
from payables.services import vendor_approval
from payables.services import vendors as vendor_service
from payables.routers.common import unwrap

router = APIRouter(prefix="/api/vendors", tags=["vendors"])


@router.get("", response_model=List[VendorRead])
def list_vendors(
    status_filter: Optional[VendorStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> List[VendorRead]:
    vendors = unwrap(vendor_service.list_vendors(db, actor=actor, status=status_filter))
    return [VendorRead.model_validate(vendor) for vendor in vendors]


@router.post("", response_model=VendorRead, status_code=status.HTTP_201_CREATED)
def create_vendor(
    payload: VendorCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> VendorRead:
    vendor = unwrap(vendor_service.create_vendor(db, data=payload, actor=actor), request=request, actor=actor)
    return VendorRead.model_validate(vendor)


@router.post("/{vendor_id}/approve", response_model=VendorRead)
def approve_vendor(
    vendor_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> VendorRead:
    vendor = unwrap(vendor_service.approve_vendor(db, vendor_id=vendor_id, actor=actor), request=request, actor=actor)
    return VendorRead.model_validate(vendor)


@router.post("/{vendor_id}/reject", response_model=VendorRejectionRead)
def reject_vendor(
    vendor_id: int,
    payload: ReasonPayload,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> VendorRejectionRead:
    result = vendor_approval.reject_vendor(db, vendor_id=vendor_id, reason=payload.reason, actor=actor)
    return unwrap(result, request=request, actor=actor)
