"""Attachment relocation for archived and hard-deleted invoices.

Files are never destroyed here. A file that cannot be moved stays where it is
and the failure is logged; the invoice transition it belongs to has already
committed by the time relocation runs.
"""
from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Optional

from sqlalchemy.orm import Session

from payables.core.results import after_commit
from payables.core.settings import settings
from payables.models.invoice import InvoiceAttachment


logger = logging.getLogger(__name__)

ARCHIVED_FOLDER = "Archived"
DELETED_FOLDER = "Deleted"
TYPE_FOLDERS = ("Recurring", "one-time")

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]')


class LocalFileStore:
    """Moves and writes files beneath the uploads root."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser()

    def _resolve(self, relative: str) -> Path:
        return self.root / PurePosixPath(relative)

    def move(self, source: str, destination: str) -> None:
        src = self._resolve(source)
        dst = self._resolve(destination)
        if not src.exists():
            raise FileNotFoundError(f"Attachment not found: {source}")
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))

    def write(self, content: bytes, destination: str) -> None:
        dst = self._resolve(destination)
        dst.parent.mkdir(parents=True, exist_ok=True)
        dst.write_bytes(content)

    def remove(self, relative: str) -> None:
        self._resolve(relative).unlink(missing_ok=True)


def get_file_store() -> LocalFileStore:
    return LocalFileStore(settings.ensure_uploads_dir())


@dataclass
class PlannedMove:
    attachment_id: Optional[int]
    source: str
    destination: str


@dataclass
class RelocationPlan:
    action: str
    invoice_number: str
    reason: Optional[str]
    performed_by_name: str
    performed_by_email: str
    invoice_data: dict
    moves: list[PlannedMove] = field(default_factory=list)
    update_rows: bool = True


def relocation_destination(storage_path: str, folder: str, on: date) -> str:
    """``a/2025/Recurring/Rent/x.pdf`` -> ``a/2025/Recurring/Archived/<date>/x.pdf``.

    Paths without a Recurring/one-time segment relocate next to the file's own folder.
    """
    path = PurePosixPath(storage_path)
    parts = list(path.parent.parts)
    base_index = next((i for i, part in enumerate(parts) if part in TYPE_FOLDERS), None)
    base = parts[: base_index + 1] if base_index is not None else parts
    return str(PurePosixPath(*base, folder, on.isoformat(), path.name))


def build_storage_path(*, vendor_name: str, is_recurring: bool, invoice_date: Optional[date], filename: str, token: str) -> str:
    """Upload location: <year>/<Recurring|one-time>/<vendor>/<token>_<filename>."""
    year = str((invoice_date or datetime.now(timezone.utc).date()).year)
    type_folder = TYPE_FOLDERS[0] if is_recurring else TYPE_FOLDERS[1]
    safe_name = _UNSAFE_FILENAME_CHARS.sub("-", PurePosixPath(filename).name or "attachment")
    return str(PurePosixPath("invoices", year, type_folder, _UNSAFE_FILENAME_CHARS.sub("-", vendor_name), f"{token}_{safe_name}"))


def sanitize_invoice_number(invoice_number: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("-", invoice_number)


def build_info_document(
    *,
    action: str,
    invoice_number: str,
    performed_by_name: str,
    performed_by_email: str,
    timestamp: datetime,
    reason: Optional[str],
    original_files: list[str],
    invoice_data: dict,
) -> str:
    rule = "=" * 80
    thin = "-" * 80
    files = "\n".join(f"{i}. {name}" for i, name in enumerate(original_files, start=1)) or "No files attached"
    data = "\n".join(f"{key}: {value}" for key, value in invoice_data.items())
    sections = [
        rule,
        f"INVOICE {action.upper()} - INFO DOCUMENT",
        rule,
        "",
        f"Invoice Number: {invoice_number}",
        f"Action: {action.capitalize()}",
        f"ISO Timestamp: {timestamp.isoformat()}",
        "",
        thin,
        "PERFORMED BY",
        thin,
        f"Name: {performed_by_name}",
        f"Email: {performed_by_email}",
        "",
        thin,
        "REASON",
        thin,
        reason or "No reason provided",
        "",
        thin,
        "ORIGINAL FILE LOCATIONS",
        thin,
        files,
        "",
        thin,
        f"INVOICE DATA AT TIME OF {action.upper()}",
        thin,
        data,
        rule,
        "",
    ]
    return "\n".join(sections)


def plan_relocation(
    attachments: list[InvoiceAttachment],
    *,
    folder: str,
    on: date,
) -> list[PlannedMove]:
    return [
        PlannedMove(
            attachment_id=attachment.id,
            source=attachment.storage_path,
            destination=relocation_destination(attachment.storage_path, folder, on),
        )
        for attachment in attachments
        if attachment.storage_path
    ]


def execute_relocation(db: Session, plan: RelocationPlan, store: Optional[LocalFileStore] = None) -> list[PlannedMove]:
    """Move each planned file, log failures and continue. Returns the moves that succeeded."""
    store = store or get_file_store()
    moved: list[PlannedMove] = []
    for move in plan.moves:
        try:
            store.move(move.source, move.destination)
        except OSError:
            logger.warning(
                "attachment_relocation_failed",
                extra={"operation": f"{plan.action}:{move.source}"},
                exc_info=True,
            )
            continue
        moved.append(move)

    if plan.update_rows and moved:
        for move in moved:
            attachment = db.get(InvoiceAttachment, move.attachment_id) if move.attachment_id else None
            if attachment is not None:
                attachment.storage_path = move.destination
                db.add(attachment)
        db.commit()

    if moved:
        info_path = str(
            PurePosixPath(moved[0].destination).parent / f"_INFO_{sanitize_invoice_number(plan.invoice_number)}.txt"
        )
        document = build_info_document(
            action=plan.action,
            invoice_number=plan.invoice_number,
            performed_by_name=plan.performed_by_name,
            performed_by_email=plan.performed_by_email,
            timestamp=datetime.now(timezone.utc),
            reason=plan.reason,
            original_files=[move.source for move in plan.moves],
            invoice_data=plan.invoice_data,
        )
        try:
            store.write(document.encode("utf-8"), info_path)
        except OSError:
            logger.warning("info_document_write_failed", extra={"operation": info_path}, exc_info=True)
    return moved


def relocate_after_commit(db: Session, plan: RelocationPlan) -> None:
    if not plan.moves:
        return

    def relocate(session: Session) -> None:
        execute_relocation(session, plan)

    relocate.__name__ = f"relocate_{plan.action}_attachments"
    after_commit(db, relocate)
