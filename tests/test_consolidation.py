"""Tests for engine.consolidation: invoices from delivered deliveries."""

import pytest

from salesflow.engine.consolidation import (
    consolidate_invoice,
    deliveries_to_rebill,
    eligible_deliveries,
)
from salesflow.engine.totals import check_monetary_identity
from salesflow.errors import ValidationError
from salesflow.models.invoice import Invoice

from conftest import ACME, GLOBEX, delivery, line, order


class TestConsolidateInvoice:
    """Merging lines while keeping their source delivery."""

    def test_lines_stay_traceable(self):
        o = order(line("SKU1", 50, tax=19))
        d1 = delivery(o, line("SKU1", 30, tax=19))
        d2 = delivery(o, line("SKU1", 20, tax=19))
        inv, warnings = consolidate_invoice([d1, d2], [], number="FAC-0001")
        assert warnings == []
        assert inv.status == "DRAFT"
        assert [(ln.product_ref, ln.quantity, ln.source_delivery_id) for ln in inv.lines] == [
            ("SKU1", 30, d1.id), ("SKU1", 20, d2.id),
        ]
        assert inv.source_delivery_ids == [d1.id, d2.id]
        assert inv.total == pytest.approx(595.0)
        assert check_monetary_identity(inv)

    def test_not_delivered_rejected(self):
        o = order(line("A", 5))
        with pytest.raises(ValidationError, match="not DELIVERED"):
            consolidate_invoice([delivery(o, line("A", 1), status="IN_TRANSIT")], [])

    def test_mixed_clients_rejected(self):
        o1 = order(line("A", 5))
        o2 = order(line("A", 5), client=GLOBEX)
        with pytest.raises(ValidationError, match="belongs to client"):
            consolidate_invoice([delivery(o1, line("A", 1)), delivery(o2, line("A", 1))], [])

    def test_already_invoiced_rejected(self):
        o = order(line("A", 5))
        d = delivery(o, line("A", 1))
        existing = Invoice(client_ref=ACME, status="SENT", source_delivery_ids=[d.id])
        with pytest.raises(ValidationError, match="already on invoice"):
            consolidate_invoice([d], [existing])

    def test_rejected_invoice_releases_deliveries(self):
        o = order(line("A", 5))
        d = delivery(o, line("A", 1))
        rejected = Invoice(client_ref=ACME, status="REJECTED", source_delivery_ids=[d.id])
        inv, _ = consolidate_invoice([d], [rejected])
        assert inv.source_delivery_ids == [d.id]

    def test_empty_selection(self):
        with pytest.raises(ValidationError):
            consolidate_invoice([], [])


class TestEligibility:
    def test_eligible_deliveries(self):
        o = order(line("A", 5))
        free = delivery(o, line("A", 1))
        billed = delivery(o, line("A", 1))
        pending = delivery(o, line("A", 1), status="IN_TRANSIT")
        other = delivery(order(line("A", 1), client=GLOBEX), line("A", 1))
        invoices = [Invoice(client_ref=ACME, status="ACCEPTED", source_delivery_ids=[billed.id])]
        out = eligible_deliveries(ACME, [free, billed, pending, other], invoices)
        assert [d.id for d in out] == [free.id]

    def test_rebill_needs_rejected_invoice(self):
        o = order(line("A", 5))
        d1, d2 = delivery(o, line("A", 1)), delivery(o, line("A", 2))
        inv = Invoice(client_ref=ACME, status="REJECTED", source_delivery_ids=[d2.id, d1.id])
        assert [d.id for d in deliveries_to_rebill(inv, [d1, d2])] == [d2.id, d1.id]
        with pytest.raises(ValidationError):
            deliveries_to_rebill(inv.model_copy(update={"status": "ACCEPTED"}), [d1, d2])
