from __future__ import annotations

import logging
from datetime import date
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from sqlalchemy.orm import Session

from payables.core.deps import get_current_actor
from payables.core.rbac import Actor
from payables.db.session import get_db
from payables.schemas.invoice import (
    ArchiveOutcome,
    ArchivePayload,
    AttachmentRead,
    CommentCreate,
    CommentRead,
    InvoiceCreate,
    InvoiceDetail,
    InvoiceListResponse,
    InvoiceRead,
    InvoiceUpdate,
    ReasonPayload,
    VendorGateRead,
)
from payables.schemas.payment import PaymentCreate, PaymentRead, PaymentSummaryRead
from payables.schemas.vendor import JointApprovalRead
from payables.services import invoices as invoice_service
from payables.services import payments as payment_service
from payables.services import vendor_approval
from payables.services.attachments import build_storage_path, get_file_store
from payables.services.invoice_query import InvoiceFilters, SortDir, list_invoices as query_invoices
from payables.routers.common import unwrap

router = APIRouter(prefix="/api/invoices", tags=["invoices"])
logger = logging.getLogger(__name__)


@router.get("", response_model=InvoiceListResponse)
def list_invoices(
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
    search: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    vendor_id: Optional[int] = Query(None),
    category_id: Optional[int] = Query(None),
    invoice_profile_id: Optional[int] = Query(None),
    payment_type_id: Optional[int] = Query(None),
    is_recurring: Optional[bool] = Query(None),
    tds_applicable: Optional[bool] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    show_archived: bool = Query(False),
    sort_by: Optional[str] = Query(None),
    sort_dir: SortDir = Query("asc"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceListResponse:
    filters = InvoiceFilters(
        search=search,
        status=status_filter,
        vendor_id=vendor_id,
        category_id=category_id,
        invoice_profile_id=invoice_profile_id,
        payment_type_id=payment_type_id,
        is_recurring=is_recurring,
        tds_applicable=tds_applicable,
        start_date=start_date,
        end_date=end_date,
        show_archived=show_archived,
    )
    return unwrap(
        query_invoices(db, actor=actor, filters=filters, sort_by=sort_by, sort_dir=sort_dir, page=page, per_page=per_page)
    )


@router.post("", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceRead:
    invoice = unwrap(invoice_service.submit_invoice(db, data=payload, actor=actor), request=request, actor=actor)
    return InvoiceRead.model_validate(invoice)


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceDetail:
    return unwrap(invoice_service.get_invoice_detail(db, invoice_id=invoice_id, actor=actor))


@router.patch("/{invoice_id}", response_model=InvoiceRead)
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceRead:
    result = invoice_service.edit_invoice(db, invoice_id=invoice_id, data=payload, actor=actor)
    return InvoiceRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{invoice_id}/approve", response_model=InvoiceRead)
def approve_invoice(
    invoice_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceRead:
    result = invoice_service.approve_invoice(db, invoice_id=invoice_id, actor=actor)
    return InvoiceRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{invoice_id}/reject", response_model=InvoiceRead)
def reject_invoice(
    invoice_id: int,
    payload: ReasonPayload,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceRead:
    result = invoice_service.reject_invoice(db, invoice_id=invoice_id, reason=payload.reason, actor=actor)
    return InvoiceRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{invoice_id}/hold", response_model=InvoiceRead)
def hold_invoice(
    invoice_id: int,
    payload: ReasonPayload,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceRead:
    result = invoice_service.hold_invoice(db, invoice_id=invoice_id, reason=payload.reason, actor=actor)
    return InvoiceRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{invoice_id}/release-hold", response_model=InvoiceRead)
def release_hold(
    invoice_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceRead:
    result = invoice_service.release_hold(db, invoice_id=invoice_id, actor=actor)
    return InvoiceRead.model_validate(unwrap(result, request=request, actor=actor))


@router.post("/{invoice_id}/archive", response_model=ArchiveOutcome)
def archive_invoice(
    invoice_id: int,
    payload: ArchivePayload,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ArchiveOutcome:
    result = invoice_service.request_archive(db, invoice_id=invoice_id, reason=payload.reason, actor=actor)
    return ArchiveOutcome(**unwrap(result, request=request, actor=actor))


@router.post("/{invoice_id}/delete", status_code=status.HTTP_200_OK)
def permanently_delete_invoice(
    invoice_id: int,
    payload: ArchivePayload,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> dict:
    result = invoice_service.permanently_delete_invoice(db, invoice_id=invoice_id, reason=payload.reason, actor=actor)
    snapshot = unwrap(result, request=request, actor=actor)
    return {"deleted": True, "invoice": snapshot}


@router.get("/{invoice_id}/vendor-gate", response_model=VendorGateRead)
def vendor_gate(
    invoice_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> VendorGateRead:
    return unwrap(vendor_approval.check_vendor_gate(db, invoice_id=invoice_id, actor=actor))


@router.post("/{invoice_id}/approve-with-vendor", response_model=JointApprovalRead)
def approve_with_vendor(
    invoice_id: int,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> JointApprovalRead:
    result = vendor_approval.approve_invoice_and_vendor(db, invoice_id=invoice_id, actor=actor)
    return unwrap(result, request=request, actor=actor)


@router.post("/{invoice_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
def add_comment(
    invoice_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> CommentRead:
    comment = unwrap(invoice_service.add_comment(db, invoice_id=invoice_id, body=payload.body, actor=actor))
    return CommentRead.model_validate(comment)


@router.post("/{invoice_id}/attachments", response_model=AttachmentRead, status_code=status.HTTP_201_CREATED)
def upload_attachment(
    invoice_id: int,
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> AttachmentRead:
    invoice = unwrap(invoice_service.get_invoice_detail(db, invoice_id=invoice_id, actor=actor)).invoice
    vendor_name = unwrap(vendor_approval.check_vendor_gate(db, invoice_id=invoice_id, actor=actor)).vendor_name
    content = file.file.read()
    storage_path = build_storage_path(
        vendor_name=vendor_name,
        is_recurring=invoice.is_recurring,
        invoice_date=invoice.invoice_date,
        filename=file.filename or "attachment",
        token=uuid4().hex[:12],
    )
    store = get_file_store()
    store.write(content, storage_path)
    result = invoice_service.register_attachment(
        db,
        invoice_id=invoice_id,
        original_name=file.filename or "attachment",
        storage_path=storage_path,
        size_bytes=len(content),
        mime_type=file.content_type,
        actor=actor,
    )
    if not result.success:
        store.remove(storage_path)
        logger.info("attachment_discarded", extra={"operation": "upload_attachment", "error_kind": result.error_kind.value})
    return AttachmentRead.model_validate(unwrap(result, request=request, actor=actor))


@router.get("/{invoice_id}/payments/summary", response_model=PaymentSummaryRead)
def payment_summary(
    invoice_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> PaymentSummaryRead:
    return unwrap(payment_service.get_payment_summary(db, invoice_id=invoice_id, actor=actor))


@router.post("/{invoice_id}/payments", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def create_payment(
    invoice_id: int,
    payload: PaymentCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> PaymentRead:
    result = payment_service.create_payment(db, invoice_id=invoice_id, data=payload, actor=actor)
    return PaymentRead.model_validate(unwrap(result, request=request, actor=actor))
