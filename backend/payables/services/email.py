"""Outbound email for review outcomes.

Delivery is best effort: it runs after the owning transaction commits and a
failure is only logged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import Session

from payables.core.results import after_commit
from payables.core.settings import settings


logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
POSTMARK_URL = "https://api.postmarkapp.com/email"


@dataclass
class EmailMessage:
    to_address: str
    subject: str
    html: str
    text: Optional[str] = None


@dataclass
class EmailSendResult:
    provider: str
    message_id: Optional[str] = None


class EmailSendError(RuntimeError):
    pass


def email_enabled() -> bool:
    return settings.email_provider != "disabled"


def _post(provider: str, url: str, *, payload: dict, headers: dict) -> dict:
    with httpx.Client(timeout=15) as client:
        resp = client.post(url, json=payload, headers=headers)
    if resp.status_code >= 400:
        raise EmailSendError(f"{provider} error: {resp.status_code} {resp.text}")
    return resp.json()


def _send_resend(message: EmailMessage) -> EmailSendResult:
    payload = {
        "from": settings.email_from,
        "to": [message.to_address],
        "subject": message.subject,
        "html": message.html,
    }
    if message.text:
        payload["text"] = message.text
    body = _post("Resend", RESEND_URL, payload=payload, headers={"Authorization": f"Bearer {settings.email_api_key}"})
    return EmailSendResult(provider="resend", message_id=body.get("id"))


def _send_postmark(message: EmailMessage) -> EmailSendResult:
    payload = {
        "From": settings.email_from,
        "To": message.to_address,
        "Subject": message.subject,
        "HtmlBody": message.html,
    }
    if message.text:
        payload["TextBody"] = message.text
    headers = {"X-Postmark-Server-Token": settings.email_api_key, "Accept": "application/json"}
    body = _post("Postmark", POSTMARK_URL, payload=payload, headers=headers)
    return EmailSendResult(provider="postmark", message_id=body.get("MessageID"))


PROVIDERS: dict[str, Callable[[EmailMessage], EmailSendResult]] = {
    "resend": _send_resend,
    "postmark": _send_postmark,
}


def send_email(message: EmailMessage) -> EmailSendResult:
    provider = settings.email_provider
    if provider == "disabled":
        raise EmailSendError("EMAIL_PROVIDER disabled")
    sender = PROVIDERS.get(provider)
    if sender is None:
        raise EmailSendError(f"Unsupported EMAIL_PROVIDER: {provider}")
    if not settings.email_from:
        raise EmailSendError("EMAIL_FROM not configured")
    if not settings.email_api_key:
        raise EmailSendError(f"EMAIL_API_KEY not configured for {provider}")
    return sender(message)


def send_email_after_commit(db: Session, *, to_address: Optional[str], subject: str, html: str, text: str | None = None) -> None:
    if not to_address:
        return
    message = EmailMessage(to_address=to_address, subject=subject, html=html, text=text)

    def deliver(_session: Session) -> None:
        if not email_enabled():
            logger.info("email_skipped_provider_disabled", extra={"operation": subject})
            return
        try:
            send_email(message)
        except (EmailSendError, httpx.HTTPError):
            logger.warning("email_delivery_failed", extra={"operation": subject}, exc_info=True)

    deliver.__name__ = "send_email"
    after_commit(db, deliver)
