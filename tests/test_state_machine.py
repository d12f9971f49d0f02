"""Tests for engine.state_machine: transitions, approval, order status."""

import pytest

from salesflow.engine.state_machine import (
    apply_order_status,
    approve_quote,
    can_transition,
    derive_order_status,
    ensure_cancellable,
    ensure_editable,
    mark_delivered,
    transition,
)
from salesflow.errors import InvalidTransition, ValidationError
from salesflow.models.credit_note import CreditNote
from salesflow.models.invoice import Invoice
from salesflow.models.quote import Quote

from conftest import ACME, delivery, line, order


def _quote(status="SENT"):
    return Quote(
        client_ref=ACME,
        number="COT-0007",
        status=status,
        lines=[
            line("SKU1", 10, price=12.5, discount=10, tax=19),
            line("SKU2", 4, price=40.0, tax=19),
            line("SKU3", 1, price=99.0, discount=5, tax=5),
        ],
    )


class TestTransition:
    def test_allowed(self):
        inv = Invoice(client_ref=ACME)
        sent = transition(inv, "SENT")
        assert sent.status == "SENT"
        assert inv.status == "DRAFT"

    def test_invalid_identifies_states(self):
        inv = Invoice(client_ref=ACME, status="ACCEPTED")
        with pytest.raises(InvalidTransition) as exc:
            transition(inv, "SENT")
        assert exc.value.current == "ACCEPTED"
        assert exc.value.requested == "SENT"
        assert exc.value.kind == "invoice"

    def test_terminal_states(self):
        assert not can_transition(Invoice(client_ref=ACME, status="VOIDED"), "DRAFT")
        assert not can_transition(CreditNote(client_ref=ACME, invoice_id="x", status="VOIDED"), "ISSUED")
        assert not can_transition(_quote("REJECTED"), "APPROVED")

    def test_rejected_invoice_is_terminal(self):
        assert not can_transition(Invoice(client_ref=ACME, status="REJECTED"), "SENT")


class TestApproveQuote:
    """Quote approval produces exactly one order from the approved subset."""

    def test_subset_copied_unchanged(self):
        q = _quote()
        approved, o = approve_quote(q, ["SKU1", "SKU3"], order_number="PED-COT-0007")
        assert approved.status == "APPROVED"
        assert approved.approved_line_refs == ["SKU1", "SKU3"]
        assert approved.order_id == o.id
        assert [ln.product_ref for ln in o.lines] == ["SKU1", "SKU3"]
        for src, copied in zip([q.lines[0], q.lines[2]], o.lines):
            assert copied.unit_price == src.unit_price
            assert copied.discount_percent == src.discount_percent
            assert copied.tax_percent == src.tax_percent
            assert copied.quantity == src.quantity
        assert o.quote_id == q.id
        assert o.status == "SENT"
        assert o.number == "PED-COT-0007"

    def test_duplicate_refs_collapse(self):
        approved, o = approve_quote(_quote(), ["SKU2", "SKU2"])
        assert approved.approved_line_refs == ["SKU2"]
        assert len(o.lines) == 1

    def test_empty_selection_rejected(self):
        with pytest.raises(ValidationError):
            approve_quote(_quote(), [])

    def test_unknown_ref_rejected(self):
        with pytest.raises(ValidationError) as exc:
            approve_quote(_quote(), ["SKU1", "NOPE"])
        assert exc.value.product_refs == ["NOPE"]

    def test_only_from_sent(self):
        with pytest.raises(InvalidTransition):
            approve_quote(_quote("DRAFT"), ["SKU1"])

    def test_input_quote_untouched(self):
        q = _quote()
        approve_quote(q, ["SKU1"])
        assert q.status == "SENT"
        assert q.approved_line_refs == []


class TestOrderStatus:
    def test_no_delivery_keeps_status(self):
        o = order(line("A", 10))
        assert derive_order_status(o, []) == "CONFIRMED"

    def test_first_delivery_moves_to_in_progress(self):
        o = order(line("A", 10), line("B", 5))
        updated = apply_order_status(o, [delivery(o, line("A", 3), status="DRAFT")])
        assert updated.status == "IN_PROGRESS"

    def test_partially_delivered(self):
        o = order(line("A", 10), line("B", 5))
        updated = apply_order_status(o, [delivery(o, line("A", 10))])
        assert updated.status == "PARTIALLY_DELIVERED"

    def test_two_deliveries_complete_the_order(self):
        o = order(line("SKU1", 50))
        deps = [delivery(o, line("SKU1", 30)), delivery(o, line("SKU1", 20))]
        assert apply_order_status(o, deps).status == "DELIVERED"

    def test_cancelled_delivery_ignored(self):
        o = order(line("SKU1", 50), status="DELIVERED")
        deps = [delivery(o, line("SKU1", 30)), delivery(o, line("SKU1", 20), status="CANCELLED")]
        assert derive_order_status(o, deps) == "IN_PROGRESS"

    def test_draft_order_not_derived(self):
        o = order(line("A", 1), status="DRAFT")
        assert derive_order_status(o, [delivery(o, line("A", 1))]) == "DRAFT"

    def test_cancel_with_live_delivery_rejected(self):
        o = order(line("A", 10))
        with pytest.raises(ValidationError):
            ensure_cancellable(o, [delivery(o, line("A", 1), status="DRAFT")])

    def test_cancel_without_delivery(self):
        o = order(line("A", 10))
        ensure_cancellable(o, [delivery(o, line("A", 1), status="CANCELLED")])


class TestDelivery:
    def test_delivered_is_one_way(self):
        d = mark_delivered(delivery(None, line("A", 1), status="IN_TRANSIT", client=ACME))
        assert d.status == "DELIVERED"
        assert d.delivered_at is not None
        with pytest.raises(InvalidTransition):
            transition(d, "IN_TRANSIT")

    def test_delivered_not_editable(self):
        with pytest.raises(InvalidTransition):
            ensure_editable(delivery(None, line("A", 1), client=ACME))

    def test_draft_editable(self):
        ensure_editable(delivery(None, line("A", 1), status="DRAFT", client=ACME))
