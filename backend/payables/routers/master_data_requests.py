from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from payables.core.deps import get_current_actor
from payables.core.rbac import Actor
from payables.db.session import get_db
from payables.models.enums import MasterDataEntityType, RequestStatus
from payables.schemas.master_data_request import (
    BulkApprove,
    BulkReject,
    BulkResult,
    MasterDataRequestCreate,
    MasterDataRequestRead,
    RequestApprove,
    RequestReject,
    RequestResubmit,
)
from payables.services import master_data_requests as request_service
from payables.routers.common import unwrap

router = APIRouter(prefix="/api/master-data-requests", tags=["master-data-requests"])


@router.get("", response_model=List[MasterDataRequestRead])
def list_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    entity_type: Optional[MasterDataEntityType] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> List[MasterDataRequestRead]:
    requests = unwrap(request_service.list_requests(db, actor=actor, status=status_filter, entity_type=entity_type))
    return [MasterDataRequestRead.model_validate(item) for item in requests]


@router.get("/pending-count")
def pending_count(
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> dict[str, int]:
    return {"pending": unwrap(request_service.pending_count(db, actor=actor), request=request, actor=actor)}


@router.post("", response_model=MasterDataRequestRead, status_code=status.HTTP_201_CREATED)
def submit_request(
    payload: MasterDataRequestCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> MasterDataRequestRead:
    result = request_service.submit_request(db, payload=payload.payload, actor=actor)
    return MasterDataRequestRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/bulk-approve", response_model=BulkResult)
def bulk_approve(
    payload: BulkApprove,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> BulkResult:
    result = request_service.bulk_approve(db, request_ids=payload.request_ids, actor=actor)
    return unwrap(result, request=request, actor=actor)


@router.post("/bulk-reject", response_model=BulkResult)
def bulk_reject(
    payload: BulkReject,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> BulkResult:
    result = request_service.bulk_reject(db, request_ids=payload.request_ids, reason=payload.reason, actor=actor)
    return unwrap(result, request=request, actor=actor)


@router.post("/{request_id}/approve", response_model=MasterDataRequestRead)
def approve_request(
    request_id: int,
    payload: RequestApprove,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> MasterDataRequestRead:
    result = request_service.approve_request(
        db,
        request_id=request_id,
        actor=actor,
        admin_edits=payload.admin_edits,
        admin_notes=payload.admin_notes,
    )
    return MasterDataRequestRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{request_id}/reject", response_model=MasterDataRequestRead)
def reject_request(
    request_id: int,
    payload: RequestReject,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> MasterDataRequestRead:
    result = request_service.reject_request(db, request_id=request_id, reason=payload.reason, actor=actor)
    return MasterDataRequestRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{request_id}/resubmit", response_model=MasterDataRequestRead, status_code=status.HTTP_201_CREATED)
def resubmit_request(
    request_id: int,
    payload: RequestResubmit,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> MasterDataRequestRead:
    result = request_service.resubmit_request(db, request_id=request_id, payload=payload.payload, actor=actor)
    return MasterDataRequestRead.model_validate(unwrap(result, request=request, actor=actor))
