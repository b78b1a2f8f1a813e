from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool

from payables.core.rbac import Actor, actor_for_user
from payables.db.session import build_engine, build_sessionmaker
from payables.models import Base
from payables.models.enums import InvoiceStatus, Role, TdsRounding, VendorStatus
from payables.models.invoice import Invoice
from payables.models.master import Category, Currency, InvoiceProfile, PaymentType
from payables.models.user import User
from payables.models.vendor import Vendor


@pytest.fixture()
def engine():
    engine = build_engine("sqlite+pysqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def db(engine):
    session = build_sessionmaker(engine)()
    try:
        yield session
    finally:
        session.close()


def _make_user(db, email: str, role: Role, full_name: str) -> User:
    user = User(email=email, hashed_password="not-used", role=role, full_name=full_name, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def super_admin(db) -> User:
    return _make_user(db, "root@example.com", Role.SUPER_ADMIN, "Root Admin")


@pytest.fixture()
def admin(db) -> User:
    return _make_user(db, "admin@example.com", Role.ADMIN, "Ada Admin")


@pytest.fixture()
def standard_user(db) -> User:
    return _make_user(db, "user@example.com", Role.STANDARD_USER, "Sam User")


@pytest.fixture()
def other_user(db) -> User:
    return _make_user(db, "other@example.com", Role.STANDARD_USER, "Olive Other")


@pytest.fixture()
def admin_actor(admin) -> Actor:
    return actor_for_user(admin)


@pytest.fixture()
def super_actor(super_admin) -> Actor:
    return actor_for_user(super_admin)


@pytest.fixture()
def user_actor(standard_user) -> Actor:
    return actor_for_user(standard_user)


@pytest.fixture()
def currency(db) -> Currency:
    inr = Currency(code="INR", name="Indian Rupee", symbol="₹", decimal_places=2, is_active=True)
    db.add(inr)
    db.commit()
    return inr


@pytest.fixture()
def category(db) -> Category:
    item = Category(name="Utilities", description="Power and water", is_active=True)
    db.add(item)
    db.commit()
    return item


@pytest.fixture()
def payment_type(db) -> PaymentType:
    item = PaymentType(name="Bank Transfer", requires_reference=True, is_active=True)
    db.add(item)
    db.commit()
    return item


@pytest.fixture()
def profile(db) -> InvoiceProfile:
    item = InvoiceProfile(name="Office Rent", visible_to_all=True)
    db.add(item)
    db.commit()
    return item


@pytest.fixture()
def make_vendor(db):
    def _make(name: str = "Acme Supplies", status: VendorStatus = VendorStatus.APPROVED, created_by: User | None = None) -> Vendor:
        vendor = Vendor(name=name, status=status, is_active=True, created_by_user_id=created_by.id if created_by else None)
        db.add(vendor)
        db.commit()
        return vendor

    return _make


@pytest.fixture()
def vendor(make_vendor) -> Vendor:
    return make_vendor()


@pytest.fixture()
def make_invoice(db):
    counter = {"n": 0}

    def _make(
        vendor: Vendor,
        *,
        amount: str = "1000.00",
        status: InvoiceStatus = InvoiceStatus.UNPAID,
        created_by: User | None = None,
        due_in_days: int | None = None,
        invoice_number: str | None = None,
        tds_percentage: str | None = None,
        tds_rounding: TdsRounding = TdsRounding.EXACT,
        currency: Currency | None = None,
        **extra,
    ) -> Invoice:
        counter["n"] += 1
        invoice = Invoice(
            invoice_number=invoice_number or f"INV-{counter['n']:04d}",
            vendor_id=vendor.id,
            amount=Decimal(amount),
            invoice_date=date.today(),
            due_date=date.today() + timedelta(days=due_in_days) if due_in_days is not None else None,
            status=status,
            created_by_user_id=created_by.id if created_by else None,
            tds_applicable=tds_percentage is not None,
            tds_percentage=Decimal(tds_percentage) if tds_percentage is not None else None,
            tds_rounding=tds_rounding,
            currency_id=currency.id if currency else None,
            **extra,
        )
        db.add(invoice)
        db.commit()
        return invoice

    return _make
