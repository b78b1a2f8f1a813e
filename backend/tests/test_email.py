from __future__ import annotations

import logging

import pytest

from payables.core.settings import settings
from payables.schemas.master_data_request import CategoryRequestData
from payables.services import email
from payables.services import master_data_requests as mdr


@pytest.fixture()
def resend(monkeypatch):
    monkeypatch.setattr(settings, "email_provider", "resend")
    monkeypatch.setattr(settings, "email_from", "payables@example.com")
    monkeypatch.setattr(settings, "email_api_key", "test-key")
    sent: list[dict] = []

    def fake_post(provider, url, *, payload, headers):
        sent.append({"provider": provider, "url": url, "payload": payload, "headers": headers})
        return {"id": "msg_1"}

    monkeypatch.setattr(email, "_post", fake_post)
    return sent


def test_disabled_and_unknown_providers_raise(monkeypatch):
    message = email.EmailMessage(to_address="a@example.com", subject="Hi", html="<p>Hi</p>")
    monkeypatch.setattr(settings, "email_provider", "disabled")
    with pytest.raises(email.EmailSendError):
        email.send_email(message)

    monkeypatch.setattr(settings, "email_provider", "pigeon")
    with pytest.raises(email.EmailSendError, match="Unsupported EMAIL_PROVIDER"):
        email.send_email(message)


def test_resend_payload(resend):
    result = email.send_email(email.EmailMessage(to_address="a@example.com", subject="Hi", html="<p>Hi</p>", text="Hi"))
    assert result.message_id == "msg_1"
    assert resend[0]["url"] == email.RESEND_URL
    assert resend[0]["payload"]["to"] == ["a@example.com"]
    assert resend[0]["headers"]["Authorization"] == "Bearer test-key"


def test_review_outcome_is_emailed_to_requester(db, resend, user_actor, admin_actor, standard_user):
    request = mdr.submit_request(db, payload=CategoryRequestData(name="Travel"), actor=user_actor).data
    assert mdr.approve_request(db, request_id=request.id, actor=admin_actor).success

    assert [item["payload"]["to"] for item in resend] == [[standard_user.email]]
    assert resend[0]["payload"]["subject"] == "Your category request was approved"


def test_delivery_failure_never_fails_the_review(db, resend, monkeypatch, user_actor, admin_actor, caplog):
    def broken_post(*args, **kwargs):
        raise email.EmailSendError("Resend error: 500")

    monkeypatch.setattr(email, "_post", broken_post)
    request = mdr.submit_request(db, payload=CategoryRequestData(name="Travel"), actor=user_actor).data

    with caplog.at_level(logging.WARNING, logger="payables.services.email"):
        result = mdr.reject_request(db, request_id=request.id, reason="Not a real category", actor=admin_actor)

    assert result.success
    assert "email_delivery_failed" in caplog.messages
