"""Due-state classification and worklist priority ranking.

Nothing here is persisted: callers recompute from the invoice, its approved
payments and "today" every time.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from payables.core.settings import settings
from payables.models.enums import DueSeverity, InvoiceStatus


OPEN_STATUSES = frozenset({InvoiceStatus.UNPAID, InvoiceStatus.PARTIAL})

RANK_PENDING_APPROVAL = 0
RANK_OVERDUE = 1
RANK_DUE_SOON = 2
RANK_OPEN = 3
RANK_ON_HOLD = 4
RANK_PAID = 5
RANK_OTHER = 6


@dataclass(frozen=True)
class DueState:
    days: int
    label: str
    severity: DueSeverity
    is_overdue: bool
    is_due_soon: bool

    @property
    def days_overdue(self) -> int:
        return -self.days if self.days < 0 else 0

    @property
    def days_until_due(self) -> int:
        return self.days if self.days > 0 else 0


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _plural(count: int) -> str:
    return "day" if count == 1 else "days"


def classify_due_state(
    status: InvoiceStatus,
    due_date: Optional[date | datetime],
    remaining_balance: Decimal,
    today: date | datetime,
    *,
    threshold_days: Optional[int] = None,
) -> Optional[DueState]:
    if status not in OPEN_STATUSES or due_date is None or remaining_balance <= 0:
        return None
    threshold = settings.due_soon_threshold_days if threshold_days is None else threshold_days
    diff = (_as_date(due_date) - _as_date(today)).days

    if diff < 0:
        overdue = -diff
        return DueState(
            days=diff,
            label=f"Overdue by {overdue} {_plural(overdue)}",
            severity=DueSeverity.CRITICAL,
            is_overdue=True,
            is_due_soon=False,
        )
    if diff == 0:
        return DueState(days=0, label="Due today", severity=DueSeverity.WARNING, is_overdue=False, is_due_soon=False)
    due_soon = diff <= threshold
    return DueState(
        days=diff,
        label=f"Due in {diff} {_plural(diff)}",
        severity=DueSeverity.WARNING if due_soon else DueSeverity.INFO,
        is_overdue=False,
        is_due_soon=due_soon,
    )


def priority_rank(status: InvoiceStatus, due_state: Optional[DueState]) -> int:
    if status == InvoiceStatus.PENDING_APPROVAL:
        return RANK_PENDING_APPROVAL
    if status in OPEN_STATUSES:
        if due_state is not None and due_state.is_overdue:
            return RANK_OVERDUE
        if due_state is not None and due_state.is_due_soon:
            return RANK_DUE_SOON
        return RANK_OPEN
    if status == InvoiceStatus.ON_HOLD:
        return RANK_ON_HOLD
    if status == InvoiceStatus.PAID:
        return RANK_PAID
    return RANK_OTHER


def priority_sort_key(rank: int, due_state: Optional[DueState], created_at: Optional[datetime]) -> tuple:
    """Ascending key: lower rank first, then the rank's own tie-break."""
    if rank == RANK_OVERDUE and due_state is not None:
        return (rank, -due_state.days_overdue)
    if rank == RANK_DUE_SOON and due_state is not None:
        return (rank, due_state.days_until_due)
    created = created_at.timestamp() if created_at is not None else 0.0
    return (rank, -created)
