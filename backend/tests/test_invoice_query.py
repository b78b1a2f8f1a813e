from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from payables.core.errors import ErrorKind
from payables.models.enums import InvoiceStatus, PaymentStatus
from payables.models.payment import Payment
from payables.services.due_state import RANK_DUE_SOON, RANK_OVERDUE, RANK_PENDING_APPROVAL
from payables.services.invoice_query import InvoiceFilters, list_invoices


@pytest.fixture()
def worklist(db, vendor, make_vendor, make_invoice, payment_type):
    other = make_vendor("Globex Power")
    invoices = {
        "pending": make_invoice(vendor, status=InvoiceStatus.PENDING_APPROVAL),
        "overdue_5": make_invoice(vendor, amount="500.00", due_in_days=-5, invoice_name="Electricity March"),
        "overdue_1": make_invoice(vendor, amount="800.00", due_in_days=-1),
        "due_2": make_invoice(other, amount="300.00", due_in_days=2),
        "open": make_invoice(other, amount="900.00"),
        "on_hold": make_invoice(vendor, status=InvoiceStatus.ON_HOLD, due_in_days=-10),
        "paid": make_invoice(vendor, status=InvoiceStatus.PAID),
        "archived": make_invoice(vendor, due_in_days=-3, is_archived=True),
    }
    db.add(
        Payment(
            invoice_id=invoices["overdue_1"].id,
            payment_type_id=payment_type.id,
            amount_paid=Decimal("700.00"),
            payment_date=date.today(),
            status=PaymentStatus.APPROVED,
        )
    )
    db.commit()
    return invoices


def _ids(response):
    return [row.id for row in response.items]


def test_default_order_follows_priority(db, user_actor, worklist):
    response = list_invoices(db, actor=user_actor, today=date.today()).data
    expected = ["pending", "overdue_5", "overdue_1", "due_2", "open", "on_hold", "paid"]
    assert _ids(response) == [worklist[key].id for key in expected]
    assert response.total == 7

    ranks = {row.id: row.priority_rank for row in response.items}
    assert ranks[worklist["pending"].id] == RANK_PENDING_APPROVAL
    assert ranks[worklist["overdue_5"].id] == RANK_OVERDUE
    assert ranks[worklist["due_2"].id] == RANK_DUE_SOON


def test_rows_are_enriched(db, user_actor, worklist):
    rows = {row.id: row for row in list_invoices(db, actor=user_actor, today=date.today()).data.items}
    partial = rows[worklist["overdue_1"].id]
    assert partial.total_paid == Decimal("700.00")
    assert partial.remaining_balance == Decimal("100.00")
    assert partial.effective_status == InvoiceStatus.PARTIAL
    assert partial.due_state.is_overdue is True
    assert partial.vendor_name == "Acme Supplies"
    assert rows[worklist["on_hold"].id].due_state is None


def test_overdue_filter_excludes_held_and_archived(db, user_actor, worklist):
    response = list_invoices(db, actor=user_actor, filters=InvoiceFilters(status="overdue"), today=date.today()).data
    assert set(_ids(response)) == {worklist["overdue_5"].id, worklist["overdue_1"].id}


def test_show_archived(db, user_actor, worklist):
    response = list_invoices(db, actor=user_actor, filters=InvoiceFilters(show_archived=True), today=date.today()).data
    assert worklist["archived"].id in _ids(response)
    assert response.total == 8


def test_search_matches_vendor_and_invoice_name(db, user_actor, worklist):
    by_vendor = list_invoices(db, actor=user_actor, filters=InvoiceFilters(search="globex"), today=date.today()).data
    assert set(_ids(by_vendor)) == {worklist["due_2"].id, worklist["open"].id}

    by_name = list_invoices(db, actor=user_actor, filters=InvoiceFilters(search="electricity"), today=date.today()).data
    assert _ids(by_name) == [worklist["overdue_5"].id]


def test_payment_type_filter(db, user_actor, worklist, payment_type):
    response = list_invoices(db, actor=user_actor, filters=InvoiceFilters(payment_type_id=payment_type.id), today=date.today()).data
    assert _ids(response) == [worklist["overdue_1"].id]


def test_sort_by_remaining_balance_happens_before_paging(db, user_actor, worklist):
    first = list_invoices(db, actor=user_actor, sort_by="remaining_balance", sort_dir="asc", per_page=3, today=date.today()).data
    balances = [row.remaining_balance for row in first.items]
    assert balances == sorted(balances)
    assert worklist["overdue_1"].id == first.items[0].id
    assert first.total_pages == 3

    last = list_invoices(db, actor=user_actor, sort_by="remaining_balance", sort_dir="asc", page=3, per_page=3, today=date.today()).data
    assert len(last.items) == 1


def test_sort_by_stored_column(db, user_actor, worklist):
    response = list_invoices(db, actor=user_actor, sort_by="amount", sort_dir="desc", per_page=2, today=date.today()).data
    assert [row.amount for row in response.items] == [Decimal("1000.00"), Decimal("1000.00")]
    assert response.total == 7


def test_invalid_inputs(db, user_actor, worklist):
    assert list_invoices(db, actor=user_actor, sort_by="vendor_mood").error == "Unsupported sort key: vendor_mood"
    result = list_invoices(db, actor=user_actor, filters=InvoiceFilters(status="lost"))
    assert result.error_kind == ErrorKind.VALIDATION


def test_page_size_is_clamped(db, user_actor, worklist):
    response = list_invoices(db, actor=user_actor, per_page=10_000, page=0, today=date.today()).data
    assert response.per_page == 100
    assert response.page == 1
