from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

from payables.models.enums import DueSeverity, InvoiceStatus
from payables.services.due_state import (
    RANK_DUE_SOON,
    RANK_OPEN,
    RANK_OVERDUE,
    RANK_PAID,
    RANK_PENDING_APPROVAL,
    classify_due_state,
    priority_rank,
    priority_sort_key,
)

TODAY = date(2026, 3, 10)
BALANCE = Decimal("100.00")


def _classify(due_in: int, status: InvoiceStatus = InvoiceStatus.UNPAID, balance: Decimal = BALANCE):
    return classify_due_state(status, TODAY + timedelta(days=due_in), balance, TODAY, threshold_days=3)


def test_overdue_is_critical():
    state = _classify(-5)
    assert state.is_overdue
    assert state.days_overdue == 5
    assert state.severity == DueSeverity.CRITICAL
    assert state.label == "Overdue by 5 days"


def test_due_today_is_warning_but_not_due_soon():
    state = _classify(0)
    assert state.label == "Due today"
    assert state.severity == DueSeverity.WARNING
    assert not state.is_due_soon
    assert not state.is_overdue


def test_due_within_threshold_is_due_soon():
    state = _classify(1)
    assert state.is_due_soon
    assert state.label == "Due in 1 day"
    assert state.severity == DueSeverity.WARNING


def test_due_beyond_threshold_is_informational():
    state = _classify(4)
    assert not state.is_due_soon
    assert state.severity == DueSeverity.INFO


def test_threshold_is_configurable():
    state = classify_due_state(InvoiceStatus.UNPAID, TODAY + timedelta(days=6), BALANCE, TODAY, threshold_days=7)
    assert state.is_due_soon


def test_no_due_state_when_not_open_or_settled():
    assert _classify(-3, status=InvoiceStatus.PAID) is None
    assert _classify(-3, status=InvoiceStatus.ON_HOLD) is None
    assert _classify(-3, balance=Decimal("0")) is None
    assert classify_due_state(InvoiceStatus.UNPAID, None, BALANCE, TODAY) is None


def test_datetime_inputs_are_normalized_to_dates():
    state = classify_due_state(
        InvoiceStatus.PARTIAL,
        datetime(2026, 3, 9, 23, 59),
        BALANCE,
        datetime(2026, 3, 10, 0, 1),
    )
    assert state.days_overdue == 1


def test_priority_order_matches_worklist_expectations():
    created = datetime(2026, 1, 1)
    pending = (InvoiceStatus.PENDING_APPROVAL, None)
    overdue = (InvoiceStatus.UNPAID, _classify(-5))
    due_soon = (InvoiceStatus.UNPAID, _classify(2))
    paid = (InvoiceStatus.PAID, None)

    rows = [paid, due_soon, overdue, pending]
    ordered = sorted(rows, key=lambda row: priority_sort_key(priority_rank(*row), row[1], created))
    assert ordered == [pending, overdue, due_soon, paid]


def test_rank_values():
    assert priority_rank(InvoiceStatus.PENDING_APPROVAL, None) == RANK_PENDING_APPROVAL
    assert priority_rank(InvoiceStatus.UNPAID, _classify(-1)) == RANK_OVERDUE
    assert priority_rank(InvoiceStatus.PARTIAL, _classify(3)) == RANK_DUE_SOON
    assert priority_rank(InvoiceStatus.UNPAID, _classify(0)) == RANK_OPEN
    assert priority_rank(InvoiceStatus.PAID, None) == RANK_PAID


def test_ties_within_overdue_prefer_most_overdue():
    five = _classify(-5)
    two = _classify(-2)
    created = datetime(2026, 1, 1)
    assert priority_sort_key(RANK_OVERDUE, five, created) < priority_sort_key(RANK_OVERDUE, two, created)


def test_ties_within_open_prefer_newest():
    older = priority_sort_key(RANK_OPEN, None, datetime(2026, 1, 1))
    newer = priority_sort_key(RANK_OPEN, None, datetime(2026, 2, 1))
    assert newer < older
