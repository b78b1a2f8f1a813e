from __future__ import annotations

from sqlalchemy import select

from payables.core.errors import ErrorKind
from payables.core.rbac import actor_for_user
from payables.models.enums import MasterDataEntityType, NotificationType, RequestStatus, VendorStatus
from payables.models.master import Category
from payables.models.notification import Notification
from payables.models.vendor import Vendor
from payables.schemas.master_data_request import (
    CategoryRequestData,
    InvoiceArchiveRequestData,
    PaymentTypeRequestData,
    VendorRequestData,
)
from payables.services import master_data_requests as mdr

REASON = "Duplicate of an existing record"


def _submit(db, actor, payload):
    result = mdr.submit_request(db, payload=payload, actor=actor)
    assert result.success, result.error
    return result.data


def test_submit_notifies_admins(db, user_actor, admin):
    request = _submit(db, user_actor, VendorRequestData(name="Acme"))
    assert request.status == RequestStatus.PENDING_APPROVAL
    assert request.entity_type == MasterDataEntityType.VENDOR
    assert request.request_data["name"] == "Acme"

    notes = db.scalars(select(Notification).where(Notification.user_id == admin.id)).all()
    assert [note.type for note in notes] == [NotificationType.MASTER_DATA_REQUEST_PENDING]


def test_approve_vendor_request_materializes_with_admin_edits(db, user_actor, admin_actor, standard_user):
    request = _submit(db, user_actor, VendorRequestData(name="Acme", address="Old street"))

    result = mdr.approve_request(
        db,
        request_id=request.id,
        actor=admin_actor,
        admin_edits={"name": "Acme Corp", "entity_type": "category"},
        admin_notes="Renamed to legal name",
    )
    assert result.success, result.error
    approved = result.data
    assert approved.status == RequestStatus.APPROVED
    assert approved.reviewer_id == admin_actor.id
    assert approved.admin_edits == {"name": "Acme Corp"}

    vendor = db.scalars(select(Vendor).where(Vendor.name == "Acme Corp")).one()
    assert approved.created_entity_id == f"VEN-{vendor.id}"
    assert vendor.status == VendorStatus.APPROVED
    assert vendor.address == "Old street"
    assert vendor.created_by_user_id == standard_user.id

    notes = db.scalars(select(Notification).where(Notification.user_id == standard_user.id)).all()
    assert [note.type for note in notes] == [NotificationType.MASTER_DATA_REQUEST_APPROVED]


def test_approve_category_request_uses_category_prefix(db, user_actor, admin_actor):
    request = _submit(db, user_actor, CategoryRequestData(name="Travel"))
    approved = mdr.approve_request(db, request_id=request.id, actor=admin_actor).data
    category = db.scalars(select(Category).where(Category.name == "Travel")).one()
    assert approved.created_entity_id == f"CAT-{category.id}"


def test_only_pending_requests_can_be_approved(db, user_actor, admin_actor):
    request = _submit(db, user_actor, PaymentTypeRequestData(name="Cheque"))
    assert mdr.approve_request(db, request_id=request.id, actor=admin_actor).success

    again = mdr.approve_request(db, request_id=request.id, actor=admin_actor)
    assert again.error_kind == ErrorKind.STATE_CONFLICT
    assert again.error == "Only pending requests can be approved"


def test_standard_user_cannot_review(db, user_actor):
    request = _submit(db, user_actor, CategoryRequestData(name="Travel"))
    result = mdr.approve_request(db, request_id=request.id, actor=user_actor)
    assert result.error_kind == ErrorKind.AUTHORIZATION


def test_reject_requires_reason_of_minimum_length(db, user_actor, admin_actor):
    request = _submit(db, user_actor, CategoryRequestData(name="Travel"))

    short = mdr.reject_request(db, request_id=request.id, reason="nope", actor=admin_actor)
    assert short.error_kind == ErrorKind.VALIDATION
    assert short.error == "Rejection reason must be at least 10 characters"

    rejected = mdr.reject_request(db, request_id=request.id, reason=REASON, actor=admin_actor).data
    assert rejected.status == RequestStatus.REJECTED
    assert rejected.rejection_reason == REASON


def test_resubmission_chain_links_attempts(db, user_actor, admin_actor):
    original = _submit(db, user_actor, CategoryRequestData(name="Travl"))
    mdr.reject_request(db, request_id=original.id, reason="Spelling mistake in name", actor=admin_actor)

    result = mdr.resubmit_request(db, request_id=original.id, payload=CategoryRequestData(name="Travel"), actor=user_actor)
    assert result.success, result.error
    retry = result.data
    assert retry.previous_attempt_id == original.id
    assert retry.resubmission_count == 1
    assert retry.status == RequestStatus.PENDING_APPROVAL

    duplicate = mdr.resubmit_request(db, request_id=original.id, payload=CategoryRequestData(name="Travel"), actor=user_actor)
    assert duplicate.code == "ALREADY_RESUBMITTED"

    assert mdr.approve_request(db, request_id=retry.id, actor=admin_actor).success
    db.refresh(original)
    assert original.status == RequestStatus.REJECTED
    assert original.superseded_by_id == retry.id


def test_resubmission_limit(db, user_actor, admin_actor):
    current = _submit(db, user_actor, CategoryRequestData(name="Misc"))
    for _ in range(2):
        mdr.reject_request(db, request_id=current.id, reason=REASON, actor=admin_actor)
        current = mdr.resubmit_request(
            db, request_id=current.id, payload=CategoryRequestData(name="Misc"), actor=user_actor
        ).data
    assert current.resubmission_count == 2

    mdr.reject_request(db, request_id=current.id, reason=REASON, actor=admin_actor)
    blocked = mdr.resubmit_request(db, request_id=current.id, payload=CategoryRequestData(name="Misc"), actor=user_actor)
    assert blocked.error == "Maximum resubmission limit reached"


def test_resubmission_rules(db, user_actor, admin_actor, other_user):
    request = _submit(db, user_actor, CategoryRequestData(name="Misc"))

    pending = mdr.resubmit_request(db, request_id=request.id, payload=CategoryRequestData(name="Misc"), actor=user_actor)
    assert pending.error == "Only rejected requests can be resubmitted"

    mdr.reject_request(db, request_id=request.id, reason=REASON, actor=admin_actor)
    stranger = mdr.resubmit_request(
        db, request_id=request.id, payload=CategoryRequestData(name="Misc"), actor=actor_for_user(other_user)
    )
    assert stranger.error_kind == ErrorKind.AUTHORIZATION

    switched = mdr.resubmit_request(db, request_id=request.id, payload=VendorRequestData(name="Misc"), actor=user_actor)
    assert switched.error_kind == ErrorKind.VALIDATION


def test_bulk_approve_reports_partial_failure(db, user_actor, admin_actor, category):
    ok = _submit(db, user_actor, VendorRequestData(name="Fresh Vendor"))
    clash = _submit(db, user_actor, CategoryRequestData(name="utilities"))

    result = mdr.bulk_approve(db, request_ids=[ok.id, clash.id, 9999], actor=admin_actor)
    assert result.success
    assert result.data.succeeded == [ok.id]
    failures = {failure.request_id: failure.error for failure in result.data.failed}
    assert failures[clash.id] == 'Category "utilities" already exists'
    assert failures[9999] == "Request not found"

    db.refresh(clash)
    assert clash.status == RequestStatus.PENDING_APPROVAL
    assert db.scalars(select(Vendor).where(Vendor.name == "Fresh Vendor")).one()


def test_bulk_reject(db, user_actor, admin_actor):
    first = _submit(db, user_actor, CategoryRequestData(name="One"))
    second = _submit(db, user_actor, CategoryRequestData(name="Two"))
    mdr.approve_request(db, request_id=second.id, actor=admin_actor)

    result = mdr.bulk_reject(db, request_ids=[first.id, second.id], reason=REASON, actor=admin_actor).data
    assert result.succeeded == [first.id]
    assert (result.succeeded_count, result.failed_count) == (1, 1)


def test_archive_request_is_materialized_on_approval(db, user_actor, admin_actor, admin, vendor, make_invoice):
    invoice = make_invoice(vendor)
    request = _submit(db, user_actor, InvoiceArchiveRequestData(invoice_id=invoice.id, invoice_number="", reason="Paid twice"))
    assert request.request_data["invoice_number"] == invoice.invoice_number
    notes = db.scalars(select(Notification).where(Notification.user_id == admin.id)).all()
    assert [note.type for note in notes] == [NotificationType.ARCHIVE_REQUEST_PENDING]

    duplicate = mdr.submit_request(
        db, payload=InvoiceArchiveRequestData(invoice_id=invoice.id, invoice_number=""), actor=user_actor
    )
    assert duplicate.code == "DUPLICATE_PENDING_REQUEST"

    approved = mdr.approve_request(db, request_id=request.id, actor=admin_actor).data
    assert approved.created_entity_id == f"INV-{invoice.id}"
    db.refresh(invoice)
    assert invoice.is_archived is True
    assert invoice.archived_reason == "Paid twice"

    again = mdr.submit_request(
        db, payload=InvoiceArchiveRequestData(invoice_id=invoice.id, invoice_number=""), actor=user_actor
    )
    assert again.code == "ALREADY_ARCHIVED"


def test_listing_is_scoped_to_requester(db, user_actor, admin_actor, other_user):
    mine = _submit(db, user_actor, CategoryRequestData(name="Mine"))
    _submit(db, actor_for_user(other_user), CategoryRequestData(name="Theirs"))

    assert [req.id for req in mdr.list_requests(db, actor=user_actor).data] == [mine.id]
    assert len(mdr.list_requests(db, actor=admin_actor).data) == 2
    assert mdr.pending_count(db, actor=admin_actor).data == 2
    assert mdr.pending_count(db, actor=user_actor).error_kind == ErrorKind.AUTHORIZATION

    filtered = mdr.list_requests(db, actor=admin_actor, entity_type=MasterDataEntityType.VENDOR).data
    assert filtered == []
