"""Propose -> review -> approve (materialize) | reject | resubmit, for every master-data kind.

Payloads are stored as JSON and decoded into their typed variant at this
boundary; materializers only ever see typed payloads.
"""
from __future__ import annotations

from typing import Callable, Optional

from pydantic import ValidationError as PayloadValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payables.core.errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from payables.core.rbac import Actor, require_admin
from payables.core.results import core_action
from payables.core.settings import settings
from payables.db.base import utcnow
from payables.models.enums import MasterDataEntityType, NotificationType, RequestStatus
from payables.models.master import Category, InvoiceProfile, PaymentType
from payables.models.master_data_request import MasterDataRequest
from payables.models.user import User
from payables.schemas.master_data_request import (
    BulkFailure,
    BulkResult,
    CategoryRequestData,
    InvoiceArchiveRequestData,
    InvoiceProfileRequestData,
    PaymentTypeRequestData,
    RequestData,
    VendorRequestData,
    decode_request_data,
    encode_request_data,
)
from payables.schemas.vendor import VendorCreate
from payables.services import archival
from payables.services.activity import log_activity
from payables.services.email import send_email_after_commit
from payables.services.notifications import notify_admins_after_commit, notify_user_after_commit
from payables.services.reasons import require_reason
from payables.services.transitions import guarded_update
from payables.services.vendors import create_vendor_record


ENTITY_ID_PREFIXES = {
    MasterDataEntityType.VENDOR: "VEN",
    MasterDataEntityType.CATEGORY: "CAT",
    MasterDataEntityType.INVOICE_PROFILE: "PRF",
    MasterDataEntityType.PAYMENT_TYPE: "PMT",
    MasterDataEntityType.INVOICE_ARCHIVE: "INV",
}

ENTITY_LABELS = {
    MasterDataEntityType.VENDOR: "vendor",
    MasterDataEntityType.CATEGORY: "category",
    MasterDataEntityType.INVOICE_PROFILE: "invoice profile",
    MasterDataEntityType.PAYMENT_TYPE: "payment type",
    MasterDataEntityType.INVOICE_ARCHIVE: "invoice archive",
}


def _target_key(payload: RequestData) -> Optional[str]:
    if isinstance(payload, InvoiceArchiveRequestData):
        return f"invoice:{payload.invoice_id}"
    return None


def _get_request(db: Session, request_id: int) -> MasterDataRequest:
    request = db.get(MasterDataRequest, request_id)
    if not request:
        raise NotFoundError("Request not found")
    return request


def create_request_record(
    db: Session,
    *,
    payload: RequestData,
    requester: Actor,
    previous: Optional[MasterDataRequest] = None,
) -> MasterDataRequest:
    entity_type = MasterDataEntityType(payload.entity_type)
    target_key = _target_key(payload)
    if target_key:
        duplicate = db.scalar(
            select(MasterDataRequest.id).where(
                MasterDataRequest.target_key == target_key,
                MasterDataRequest.status == RequestStatus.PENDING_APPROVAL,
            )
        )
        if duplicate is not None:
            raise StateConflictError(
                "An archive request for this invoice is already pending approval",
                code="DUPLICATE_PENDING_REQUEST",
            )

    request = MasterDataRequest(
        entity_type=entity_type,
        status=RequestStatus.PENDING_APPROVAL,
        target_key=target_key,
        requester_id=requester.id,
        request_data=encode_request_data(payload),
        resubmission_count=previous.resubmission_count + 1 if previous else 0,
        previous_attempt_id=previous.id if previous else None,
    )
    db.add(request)
    db.flush()

    log_activity(
        db,
        actor_user_id=requester.id,
        activity_type="MASTER_DATA_REQUEST_RESUBMITTED" if previous else "MASTER_DATA_REQUEST_CREATED",
        message=f"{ENTITY_LABELS[entity_type].capitalize()} request submitted",
        payload={"request_id": request.id, "entity_type": entity_type.value, "previous_attempt_id": request.previous_attempt_id},
    )
    notify_admins_after_commit(
        db,
        notif_type=(
            NotificationType.ARCHIVE_REQUEST_PENDING
            if entity_type == MasterDataEntityType.INVOICE_ARCHIVE
            else NotificationType.MASTER_DATA_REQUEST_PENDING
        ),
        message=f"New {ENTITY_LABELS[entity_type]} request awaiting review",
        payload={"request_id": request.id, "entity_type": entity_type.value},
        exclude_user_ids=[requester.id],
    )
    return request


@core_action
def submit_request(db: Session, *, payload: RequestData, actor: Actor) -> MasterDataRequest:
    if isinstance(payload, InvoiceArchiveRequestData):
        invoice = archival.get_invoice_for_update(db, payload.invoice_id)
        if invoice.is_archived:
            raise StateConflictError("Invoice is already archived", code="ALREADY_ARCHIVED")
        payload = payload.model_copy(update={"invoice_number": invoice.invoice_number})
    return create_request_record(db, payload=payload, requester=actor)


def _ensure_unique_name(db: Session, model, name: str, label: str) -> str:
    cleaned = name.strip()
    exists = db.scalar(select(model.id).where(func.lower(model.name) == cleaned.lower()).limit(1))
    if exists is not None:
        raise ValidationError(f'{label} "{cleaned}" already exists', code="DUPLICATE_NAME")
    return cleaned


def _materialize_vendor(db: Session, payload: VendorRequestData, reviewer: Actor, request: MasterDataRequest) -> int:
    vendor = create_vendor_record(
        db,
        data=VendorCreate(
            name=payload.name,
            address=payload.address,
            gst_exemption=payload.gst_exemption,
            bank_details=payload.bank_details,
        ),
        created_by_user_id=request.requester_id,
        approved_by=reviewer,
    )
    return vendor.id


def _materialize_category(db: Session, payload: CategoryRequestData, reviewer: Actor, request: MasterDataRequest) -> int:
    category = Category(
        name=_ensure_unique_name(db, Category, payload.name, "Category"),
        description=payload.description,
        is_active=True,
    )
    db.add(category)
    db.flush()
    return category.id


def _materialize_invoice_profile(
    db: Session,
    payload: InvoiceProfileRequestData,
    reviewer: Actor,
    request: MasterDataRequest,
) -> int:
    profile = InvoiceProfile(
        name=_ensure_unique_name(db, InvoiceProfile, payload.name, "Invoice profile"),
        description=payload.description,
        visible_to_all=payload.visible_to_all,
    )
    db.add(profile)
    db.flush()
    return profile.id


def _materialize_payment_type(
    db: Session,
    payload: PaymentTypeRequestData,
    reviewer: Actor,
    request: MasterDataRequest,
) -> int:
    payment_type = PaymentType(
        name=_ensure_unique_name(db, PaymentType, payload.name, "Payment type"),
        description=payload.description,
        requires_reference=payload.requires_reference,
        is_active=True,
    )
    db.add(payment_type)
    db.flush()
    return payment_type.id


def _materialize_invoice_archive(
    db: Session,
    payload: InvoiceArchiveRequestData,
    reviewer: Actor,
    request: MasterDataRequest,
) -> int:
    invoice = archival.get_invoice_for_update(db, payload.invoice_id)
    archival.archive_invoice_record(db, invoice=invoice, reason=payload.reason, actor=reviewer)
    return invoice.id


MATERIALIZERS: dict[MasterDataEntityType, Callable[..., int]] = {
    MasterDataEntityType.VENDOR: _materialize_vendor,
    MasterDataEntityType.CATEGORY: _materialize_category,
    MasterDataEntityType.INVOICE_PROFILE: _materialize_invoice_profile,
    MasterDataEntityType.PAYMENT_TYPE: _materialize_payment_type,
    MasterDataEntityType.INVOICE_ARCHIVE: _materialize_invoice_archive,
}


def _decode(entity_type: MasterDataEntityType, data: dict) -> RequestData:
    try:
        return decode_request_data(entity_type, data)
    except PayloadValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != entity_type.value)
        raise ValidationError(f"Invalid request data: {field} {first.get('msg')}".strip()) from exc


def _notify_requester(db: Session, request: MasterDataRequest, *, approved: bool) -> None:
    label = ENTITY_LABELS[request.entity_type]
    if approved:
        message = f"Your {label} request was approved"
    else:
        message = f"Your {label} request was rejected: {request.rejection_reason}"
    notify_user_after_commit(
        db,
        user_id=request.requester_id,
        notif_type=(
            NotificationType.MASTER_DATA_REQUEST_APPROVED if approved else NotificationType.MASTER_DATA_REQUEST_REJECTED
        ),
        message=message,
        payload={"request_id": request.id, "created_entity_id": request.created_entity_id},
    )
    requester = db.get(User, request.requester_id)
    send_email_after_commit(
        db,
        to_address=requester.email if requester else None,
        subject=message,
        html=f"<p>{message}.</p><p><a href=\"{settings.app_base_url}/requests/{request.id}\">View request</a></p>",
        text=message,
    )


@core_action
def approve_request(
    db: Session,
    *,
    request_id: int,
    actor: Actor,
    admin_edits: Optional[dict] = None,
    admin_notes: Optional[str] = None,
) -> MasterDataRequest:
    require_admin(actor)
    request = _get_request(db, request_id)
    if request.status != RequestStatus.PENDING_APPROVAL:
        raise StateConflictError("Only pending requests can be approved", code="REQUEST_NOT_PENDING")

    edits = {key: value for key, value in (admin_edits or {}).items() if key != "entity_type"}
    payload = _decode(request.entity_type, {**request.request_data, **edits})
    entity_id = MATERIALIZERS[request.entity_type](db, payload, actor, request)
    created_entity_id = f"{ENTITY_ID_PREFIXES[request.entity_type]}-{entity_id}"

    now = utcnow()
    if not guarded_update(
        db,
        MasterDataRequest,
        request.id,
        MasterDataRequest.status == RequestStatus.PENDING_APPROVAL,
        status=RequestStatus.APPROVED,
        reviewer_id=actor.id,
        reviewed_at=now,
        admin_edits=edits or None,
        admin_notes=admin_notes,
        created_entity_id=created_entity_id,
        updated_at=now,
    ):
        raise StateConflictError("Only pending requests can be approved", code="REQUEST_NOT_PENDING")
    db.refresh(request)

    if request.previous_attempt_id is not None:
        previous = db.get(MasterDataRequest, request.previous_attempt_id)
        if previous is not None:
            previous.superseded_by_id = request.id
            db.add(previous)
            db.flush()

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="MASTER_DATA_REQUEST_APPROVED",
        invoice_id=entity_id if request.entity_type == MasterDataEntityType.INVOICE_ARCHIVE else None,
        message=f"{ENTITY_LABELS[request.entity_type].capitalize()} request approved",
        payload={"request_id": request.id, "created_entity_id": created_entity_id, "admin_edits": edits or None},
    )
    _notify_requester(db, request, approved=True)
    return request


@core_action
def reject_request(db: Session, *, request_id: int, reason: Optional[str], actor: Actor) -> MasterDataRequest:
    require_admin(actor)
    reason = require_reason(reason, label="Rejection reason")
    request = _get_request(db, request_id)
    if request.status != RequestStatus.PENDING_APPROVAL:
        raise StateConflictError("Only pending requests can be rejected", code="REQUEST_NOT_PENDING")

    now = utcnow()
    if not guarded_update(
        db,
        MasterDataRequest,
        request.id,
        MasterDataRequest.status == RequestStatus.PENDING_APPROVAL,
        status=RequestStatus.REJECTED,
        reviewer_id=actor.id,
        reviewed_at=now,
        rejection_reason=reason,
        updated_at=now,
    ):
        raise StateConflictError("Only pending requests can be rejected", code="REQUEST_NOT_PENDING")
    db.refresh(request)

    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="MASTER_DATA_REQUEST_REJECTED",
        message=f"{ENTITY_LABELS[request.entity_type].capitalize()} request rejected",
        payload={"request_id": request.id, "reason": reason},
    )
    _notify_requester(db, request, approved=False)
    return request


@core_action
def bulk_approve(db: Session, *, request_ids: list[int], actor: Actor) -> BulkResult:
    """Approve each id in order; one bad request never blocks the rest."""
    require_admin(actor)
    succeeded: list[int] = []
    failed: list[BulkFailure] = []
    for request_id in request_ids:
        result = approve_request(db, request_id=request_id, actor=actor)
        if result.success:
            succeeded.append(request_id)
        else:
            failed.append(BulkFailure(request_id=request_id, error=result.error or "Unknown error"))
    return BulkResult(succeeded=succeeded, failed=failed)


@core_action
def bulk_reject(db: Session, *, request_ids: list[int], reason: Optional[str], actor: Actor) -> BulkResult:
    require_admin(actor)
    reason = require_reason(reason, label="Rejection reason")
    succeeded: list[int] = []
    failed: list[BulkFailure] = []
    for request_id in request_ids:
        result = reject_request(db, request_id=request_id, reason=reason, actor=actor)
        if result.success:
            succeeded.append(request_id)
        else:
            failed.append(BulkFailure(request_id=request_id, error=result.error or "Unknown error"))
    return BulkResult(succeeded=succeeded, failed=failed)


@core_action
def resubmit_request(db: Session, *, request_id: int, payload: RequestData, actor: Actor) -> MasterDataRequest:
    original = _get_request(db, request_id)
    if original.requester_id != actor.id:
        raise AuthorizationError("Only the original requester can resubmit this request")
    if original.status != RequestStatus.REJECTED:
        raise StateConflictError("Only rejected requests can be resubmitted", code="REQUEST_NOT_REJECTED")
    if original.resubmission_count >= settings.max_resubmissions:
        raise StateConflictError("Maximum resubmission limit reached", code="RESUBMISSION_LIMIT")
    if MasterDataEntityType(payload.entity_type) != original.entity_type:
        raise ValidationError("A resubmission must keep the original entity type")
    already = db.scalar(
        select(MasterDataRequest.id).where(MasterDataRequest.previous_attempt_id == original.id).limit(1)
    )
    if already is not None:
        raise StateConflictError("This request has already been resubmitted", code="ALREADY_RESUBMITTED")
    return create_request_record(db, payload=payload, requester=actor, previous=original)


@core_action
def list_requests(
    db: Session,
    *,
    actor: Actor,
    status: Optional[RequestStatus] = None,
    entity_type: Optional[MasterDataEntityType] = None,
) -> list[MasterDataRequest]:
    query = select(MasterDataRequest)
    if not actor.is_privileged:
        query = query.where(MasterDataRequest.requester_id == actor.id)
    if status is not None:
        query = query.where(MasterDataRequest.status == status)
    if entity_type is not None:
        query = query.where(MasterDataRequest.entity_type == entity_type)
    return list(db.scalars(query.order_by(MasterDataRequest.created_at.desc(), MasterDataRequest.id.desc())).all())


@core_action
def pending_count(db: Session, *, actor: Actor) -> int:
    require_admin(actor)
    return int(
        db.scalar(
            select(func.count(MasterDataRequest.id)).where(
                MasterDataRequest.status == RequestStatus.PENDING_APPROVAL
            )
        )
        or 0
    )
