from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payables.core.errors import NotFoundError, StateConflictError, ValidationError
from payables.core.rbac import Actor, require_admin
from payables.core.results import core_action
from payables.db.base import utcnow
from payables.models.enums import NotificationType, VendorStatus
from payables.models.vendor import Vendor
from payables.schemas.vendor import VendorCreate
from payables.services.activity import log_activity
from payables.services.notifications import notify_admins_after_commit, notify_user_after_commit
from payables.services.transitions import guarded_update


def find_vendor_by_name(db: Session, name: str) -> Optional[Vendor]:
    return db.scalars(
        select(Vendor).where(func.lower(Vendor.name) == name.strip().lower(), Vendor.deleted_at.is_(None))
    ).first()


def get_vendor_or_error(db: Session, vendor_id: int) -> Vendor:
    vendor = db.get(Vendor, vendor_id)
    if not vendor or vendor.deleted_at is not None:
        raise NotFoundError("Vendor not found")
    return vendor


def create_vendor_record(
    db: Session,
    *,
    data: VendorCreate,
    created_by_user_id: int,
    approved_by: Optional[Actor] = None,
) -> Vendor:
    """Insert a vendor; passing ``approved_by`` creates it already approved."""
    name = data.name.strip()
    if find_vendor_by_name(db, name):
        raise ValidationError(f'Vendor "{name}" already exists', code="DUPLICATE_VENDOR")
    vendor = Vendor(
        name=name,
        address=data.address,
        gst_exemption=data.gst_exemption,
        bank_details=data.bank_details,
        created_by_user_id=created_by_user_id,
        status=VendorStatus.APPROVED if approved_by else VendorStatus.PENDING_APPROVAL,
        approved_by_user_id=approved_by.id if approved_by else None,
        approved_at=utcnow() if approved_by else None,
    )
    db.add(vendor)
    db.flush()
    log_activity(
        db,
        actor_user_id=created_by_user_id,
        activity_type="VENDOR_CREATED",
        message=f"Vendor {vendor.name} created",
        payload={"vendor_id": vendor.id, "status": vendor.status.value},
    )
    return vendor


@core_action
def create_vendor(db: Session, *, data: VendorCreate, actor: Actor) -> Vendor:
    vendor = create_vendor_record(
        db,
        data=data,
        created_by_user_id=actor.id,
        approved_by=actor if actor.is_privileged else None,
    )
    if vendor.status == VendorStatus.PENDING_APPROVAL:
        notify_admins_after_commit(
            db,
            notif_type=NotificationType.VENDOR_PENDING_APPROVAL,
            message=f"Vendor {vendor.name} needs approval",
            payload={"vendor_id": vendor.id},
            exclude_user_ids=[actor.id],
        )
    return vendor


@core_action
def approve_vendor(db: Session, *, vendor_id: int, actor: Actor) -> Vendor:
    require_admin(actor)
    vendor = get_vendor_or_error(db, vendor_id)
    if vendor.status != VendorStatus.PENDING_APPROVAL:
        raise StateConflictError("Vendor is not pending approval", code="VENDOR_NOT_PENDING")
    now = utcnow()
    if not guarded_update(
        db,
        Vendor,
        vendor.id,
        Vendor.status == VendorStatus.PENDING_APPROVAL,
        status=VendorStatus.APPROVED,
        approved_by_user_id=actor.id,
        approved_at=now,
        updated_at=now,
    ):
        raise StateConflictError("Vendor is not pending approval", code="VENDOR_NOT_PENDING")
    db.refresh(vendor)
    log_activity(
        db,
        actor_user_id=actor.id,
        activity_type="VENDOR_APPROVED",
        message=f"Vendor {vendor.name} approved",
        payload={"vendor_id": vendor.id},
    )
    if vendor.created_by_user_id != actor.id:
        notify_user_after_commit(
            db,
            user_id=vendor.created_by_user_id,
            notif_type=NotificationType.VENDOR_APPROVED,
            message=f"Vendor {vendor.name} was approved",
            payload={"vendor_id": vendor.id},
        )
    return vendor


@core_action
def list_vendors(db: Session, *, actor: Actor, status: Optional[VendorStatus] = None) -> list[Vendor]:
    query = select(Vendor).where(Vendor.deleted_at.is_(None))
    if status is not None:
        query = query.where(Vendor.status == status)
    return list(db.scalars(query.order_by(func.lower(Vendor.name).asc())).all())
