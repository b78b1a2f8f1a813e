"""Initial payables schema: users, master data, vendors, invoices, payments, requests, audit.

Revision ID: 0001_initial_payables_schema
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial_payables_schema"
down_revision = None
branch_labels = None
depends_on = None

ROLE = sa.Enum("STANDARD_USER", "ADMIN", "SUPER_ADMIN", name="role")
VENDOR_STATUS = sa.Enum("PENDING_APPROVAL", "APPROVED", "REJECTED", name="vendor_status")
INVOICE_STATUS = sa.Enum(
    "PENDING_APPROVAL", "UNPAID", "PARTIAL", "PAID", "ON_HOLD", "REJECTED", name="invoice_status"
)
PAYMENT_STATUS = sa.Enum("PENDING", "APPROVED", "REJECTED", name="payment_status")
TDS_ROUNDING = sa.Enum("EXACT", "ROUND_UP", name="tds_rounding")
# Shared by invoices and payments; the type is created with the first table only.
TDS_ROUNDING_EXISTING = postgresql.ENUM("EXACT", "ROUND_UP", name="tds_rounding", create_type=False)
ENTITY_TYPE = sa.Enum(
    "VENDOR", "CATEGORY", "INVOICE_PROFILE", "PAYMENT_TYPE", "INVOICE_ARCHIVE", name="master_data_entity_type"
)
REQUEST_STATUS = sa.Enum("PENDING_APPROVAL", "APPROVED", "REJECTED", name="master_data_request_status")
NOTIFICATION_TYPE = sa.Enum(
    "INVOICE_PENDING_APPROVAL",
    "INVOICE_APPROVED",
    "INVOICE_REJECTED",
    "INVOICE_ON_HOLD",
    "INVOICE_HOLD_RELEASED",
    "VENDOR_PENDING_APPROVAL",
    "VENDOR_APPROVED",
    "VENDOR_REJECTED",
    "MASTER_DATA_REQUEST_PENDING",
    "MASTER_DATA_REQUEST_APPROVED",
    "MASTER_DATA_REQUEST_REJECTED",
    "ARCHIVE_REQUEST_PENDING",
    "PAYMENT_PENDING_APPROVAL",
    "PAYMENT_APPROVED",
    "PAYMENT_REJECTED",
    name="notification_type",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _user_fk(column: str, *, nullable: bool = True) -> sa.Column:
    return sa.Column(column, sa.Integer(), sa.ForeignKey("users.id"), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deactivated_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_is_active", "users", ["is_active"])

    for table in ("categories", "payment_types"):
        columns = [
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
        ]
        if table == "payment_types":
            columns.append(sa.Column("requires_reference", sa.Boolean(), nullable=False, server_default=sa.false()))
        columns.append(sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()))
        op.create_table(table, *columns, *_timestamps(), sa.UniqueConstraint("name", name=f"uq_{table}_name"))
        op.create_index(f"ix_{table}_id", table, ["id"])
        op.create_index(f"ix_{table}_is_active", table, ["is_active"])

    op.create_table(
        "invoice_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("visible_to_all", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_invoice_profiles_name"),
    )
    op.create_index("ix_invoice_profiles_id", "invoice_profiles", ["id"])

    op.create_table(
        "currencies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=3), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("symbol", sa.String(length=8), nullable=True),
        sa.Column("decimal_places", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("code", name="uq_currencies_code"),
    )
    op.create_index("ix_currencies_id", "currencies", ["id"])
    op.create_index("ix_currencies_is_active", "currencies", ["is_active"])

    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("gst_exemption", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("bank_details", sa.Text(), nullable=True),
        sa.Column("status", VENDOR_STATUS, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("created_by_user_id"),
        _user_fk("approved_by_user_id"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("rejected_by_user_id"),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_vendors_id", "vendors", ["id"])
    op.create_index("ix_vendors_status", "vendors", ["status"])
    op.create_index("ix_vendors_created_by_user_id", "vendors", ["created_by_user_id"])
    op.create_index(
        "uq_vendors_name_lower",
        "vendors",
        [sa.text("lower(name)")],
        unique=True,
        sqlite_where=sa.text("deleted_at IS NULL"),
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(length=100), nullable=False),
        sa.Column("invoice_name", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("invoice_profile_id", sa.Integer(), sa.ForeignKey("invoice_profiles.id"), nullable=True),
        sa.Column("currency_id", sa.Integer(), sa.ForeignKey("currencies.id"), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("period_start", sa.Date(), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tds_applicable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tds_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("tds_rounding", TDS_ROUNDING, nullable=False),
        sa.Column("status", INVOICE_STATUS, nullable=False),
        _user_fk("created_by_user_id"),
        sa.Column("hold_reason", sa.Text(), nullable=True),
        _user_fk("hold_by_user_id"),
        sa.Column("hold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _user_fk("rejected_by_user_id"),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("approved_by_user_id"),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        _user_fk("archived_by_user_id"),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("invoice_number", "vendor_id", name="uq_invoices_invoice_number_vendor_id"),
        sa.CheckConstraint("amount > 0", name="ck_invoices_amount_positive"),
    )
    for column in (
        "id",
        "invoice_number",
        "vendor_id",
        "category_id",
        "invoice_profile_id",
        "invoice_date",
        "due_date",
        "status",
        "created_by_user_id",
        "is_archived",
    ):
        op.create_index(f"ix_invoices_{column}", "invoices", [column])

    op.create_table(
        "invoice_attachments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        _user_fk("uploaded_by_user_id"),
        sa.Column("original_name", sa.String(length=255), nullable=False),
        sa.Column("storage_path", sa.String(length=500), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=True),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("storage_path", name="uq_invoice_attachments_storage_path"),
    )
    op.create_index("ix_invoice_attachments_id", "invoice_attachments", ["id"])
    op.create_index("ix_invoice_attachments_invoice_id", "invoice_attachments", ["invoice_id"])

    op.create_table(
        "invoice_comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        _user_fk("author_user_id"),
        sa.Column("body", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_invoice_comments_id", "invoice_comments", ["id"])
    op.create_index("ix_invoice_comments_invoice_id", "invoice_comments", ["invoice_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payment_type_id", sa.Integer(), sa.ForeignKey("payment_types.id"), nullable=True),
        sa.Column("amount_paid", sa.Numeric(14, 2), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        sa.Column("status", PAYMENT_STATUS, nullable=False),
        sa.Column("tds_amount_applied", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("tds_rounding", TDS_ROUNDING_EXISTING, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _user_fk("created_by_user_id"),
        _user_fk("reviewed_by_user_id"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount_paid > 0", name="ck_payments_amount_paid_positive"),
    )
    for column in ("id", "invoice_id", "payment_type_id", "status", "created_by_user_id"):
        op.create_index(f"ix_payments_{column}", "payments", [column])

    op.create_table(
        "master_data_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entity_type", ENTITY_TYPE, nullable=False),
        sa.Column("status", REQUEST_STATUS, nullable=False),
        sa.Column("target_key", sa.String(length=100), nullable=True),
        _user_fk("requester_id", nullable=False),
        _user_fk("reviewer_id"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("request_data", sa.JSON(), nullable=False),
        sa.Column("admin_edits", sa.JSON(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("resubmission_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("previous_attempt_id", sa.Integer(), sa.ForeignKey("master_data_requests.id"), nullable=True),
        sa.Column("superseded_by_id", sa.Integer(), sa.ForeignKey("master_data_requests.id"), nullable=True),
        sa.Column("created_entity_id", sa.String(length=50), nullable=True),
        *_timestamps(),
    )
    for column in ("id", "entity_type", "status", "target_key", "requester_id", "previous_attempt_id"):
        op.create_index(f"ix_master_data_requests_{column}", "master_data_requests", [column])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_id", sa.Integer(), nullable=True),
        _user_fk("actor_user_id"),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    for column in ("id", "invoice_id", "actor_user_id", "type"):
        op.create_index(f"ix_activity_logs_{column}", "activity_logs", [column])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", NOTIFICATION_TYPE, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    for column in ("id", "user_id", "type", "read_at"):
        op.create_index(f"ix_notifications_{column}", "notifications", [column])


def downgrade() -> None:
    for table in (
        "notifications",
        "activity_logs",
        "master_data_requests",
        "payments",
        "invoice_comments",
        "invoice_attachments",
        "invoices",
        "vendors",
        "currencies",
        "invoice_profiles",
        "payment_types",
        "categories",
        "users",
    ):
        op.drop_table(table)

    if op.get_bind().dialect.name != "sqlite":
        for enum in (
            NOTIFICATION_TYPE,
            REQUEST_STATUS,
            ENTITY_TYPE,
            TDS_ROUNDING,
            PAYMENT_STATUS,
            INVOICE_STATUS,
            VENDOR_STATUS,
            ROLE,
        ):
            enum.drop(op.get_bind(), checkfirst=True)
