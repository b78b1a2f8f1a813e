from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient

import payables.main as main_module
from payables.core.deps import get_current_user
from payables.core.security import get_password_hash
from payables.db.session import get_db
from payables.main import app
from payables.models.enums import InvoiceStatus, Role, VendorStatus
from payables.models.user import User


@pytest.fixture()
def api(db, engine, admin, standard_user, monkeypatch):
    current = {"user": admin}

    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_current_user():
        return current["user"]

    monkeypatch.setattr(main_module, "engine", engine)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    client_instance = TestClient(app)
    try:
        yield client_instance, current
    finally:
        client_instance.close()
        app.dependency_overrides.clear()


def test_healthz(api):
    client, _ = api
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_and_list_invoices(api, vendor, standard_user):
    client, current = api
    current["user"] = standard_user
    response = client.post(
        "/api/invoices",
        json={
            "invoice_number": "API-1",
            "vendor_id": vendor.id,
            "amount": "250.00",
            "invoice_date": str(date.today()),
        },
    )
    assert response.status_code == 201, response.text
    assert response.json()["status"] == InvoiceStatus.PENDING_APPROVAL.value

    listing = client.get("/api/invoices", params={"status": "pending_approval"})
    assert listing.status_code == 200
    body = listing.json()
    assert body["total"] == 1
    assert body["items"][0]["invoice_number"] == "API-1"


def test_forbidden_maps_to_403(api, vendor, make_invoice, standard_user):
    client, current = api
    invoice = make_invoice(vendor, status=InvoiceStatus.PENDING_APPROVAL)
    current["user"] = standard_user

    response = client.post(f"/api/invoices/{invoice.id}/approve")
    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "authorization"


def test_state_conflict_maps_to_409(api, vendor, make_invoice):
    client, _ = api
    invoice = make_invoice(vendor, status=InvoiceStatus.PENDING_APPROVAL)

    assert client.post(f"/api/invoices/{invoice.id}/approve").status_code == 200
    response = client.post(f"/api/invoices/{invoice.id}/approve")
    assert response.status_code == 409
    assert response.json()["detail"]["message"] == "Invoice is not pending approval"


def test_validation_maps_to_422(api, vendor, make_invoice):
    client, _ = api
    invoice = make_invoice(vendor, status=InvoiceStatus.PENDING_APPROVAL)

    response = client.post(f"/api/invoices/{invoice.id}/reject", json={"reason": "short"})
    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "validation"


def test_missing_invoice_maps_to_404(api):
    client, _ = api
    assert client.get("/api/invoices/404").status_code == 404


def test_vendor_gate_and_joint_approval(api, make_vendor, make_invoice):
    client, _ = api
    pending = make_vendor("Pending Co", status=VendorStatus.PENDING_APPROVAL)
    invoice = make_invoice(pending, status=InvoiceStatus.PENDING_APPROVAL)

    gate = client.get(f"/api/invoices/{invoice.id}/vendor-gate").json()
    assert gate["has_pending_vendor"] is True

    response = client.post(f"/api/invoices/{invoice.id}/approve-with-vendor")
    assert response.status_code == 200
    assert response.json()["invoice_status"] == "unpaid"


def test_master_data_request_round_trip(api, admin, standard_user):
    client, current = api
    current["user"] = standard_user
    submitted = client.post(
        "/api/master-data-requests",
        json={"payload": {"entity_type": "category", "name": "Travel"}},
    )
    assert submitted.status_code == 201, submitted.text
    request_id = submitted.json()["id"]
    assert client.get("/api/master-data-requests/pending-count").status_code == 403

    current["user"] = admin
    assert client.get("/api/master-data-requests/pending-count").json() == {"pending": 1}
    approved = client.post(
        f"/api/master-data-requests/{request_id}/approve",
        json={"admin_edits": {"name": "Business Travel"}},
    )
    assert approved.status_code == 200, approved.text
    assert approved.json()["created_entity_id"].startswith("CAT-")


def test_last_currency_toggle_is_a_conflict(api, currency):
    client, _ = api
    response = client.patch(f"/api/currencies/{currency.id}", json={"is_active": False})
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "LAST_ACTIVE_CURRENCY"


def test_user_management_requires_super_admin(api):
    client, _ = api
    assert client.get("/api/users").status_code == 403


def test_login_and_me(db, engine):
    user = User(
        email="login@example.com",
        hashed_password=get_password_hash("s3cret-pass"),
        role=Role.ADMIN,
        is_active=True,
    )
    db.add(user)
    db.commit()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    try:
        bad = client.post("/api/auth/login", data={"username": "login@example.com", "password": "wrong"})
        assert bad.status_code == 401

        response = client.post("/api/auth/login", data={"username": "LOGIN@example.com", "password": "s3cret-pass"})
        assert response.status_code == 200, response.text
        token = response.json()["access_token"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "login@example.com"

        assert client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401
    finally:
        client.close()
        app.dependency_overrides.clear()
