"""Tests for engine.totals: line and document totals."""

import pytest

from salesflow.engine.totals import (
    apply_totals,
    check_monetary_identity,
    compute_document_totals,
    compute_line_totals,
)
from salesflow.models.line import LineItem

from conftest import line, order


class TestComputeLineTotals:
    """Derivation from price, quantity, discount and tax."""

    def test_derived_values(self):
        t = compute_line_totals(line("SKU1", 10, price=20.0, discount=10, tax=19))
        assert t.gross == pytest.approx(200.0)
        assert t.discount == pytest.approx(20.0)
        assert t.subtotal == pytest.approx(180.0)
        assert t.tax == pytest.approx(34.2)
        assert t.total == pytest.approx(214.2)

    def test_authoritative_values_used_verbatim(self):
        ln = LineItem(
            product_ref="SKU1", quantity=3, unit_price=33.333, tax_percent=19,
            computed_subtotal=100.0, computed_tax=19.0, computed_total=119.0,
        )
        t = compute_line_totals(ln)
        assert t.subtotal == 100.0
        assert t.tax == 19.0
        assert t.total == 119.0

    def test_tax_derived_from_authoritative_subtotal(self):
        ln = LineItem(product_ref="SKU1", quantity=3, unit_price=33.333, tax_percent=10, computed_subtotal=100.0)
        t = compute_line_totals(ln)
        assert t.tax == pytest.approx(10.0)
        assert t.total == pytest.approx(110.0)

    def test_zero_quantity(self):
        t = compute_line_totals(line("SKU1", 0, price=20.0, tax=19))
        assert t.total == 0.0


class TestComputeDocumentTotals:
    """Aggregation, surcharge and the monetary identity."""

    def test_sum_with_surcharge(self):
        totals, warnings = compute_document_totals(
            [line("A", 2, price=50.0, discount=10, tax=19), line("B", 1, price=10.0)],
            surcharge=15.0,
        )
        assert warnings == []
        assert totals.subtotal == pytest.approx(125.0)
        assert totals.discount_total == pytest.approx(10.0)
        assert totals.tax_total == pytest.approx(17.1)
        assert totals.total == pytest.approx(132.1)

    def test_identity_holds(self):
        totals, _ = compute_document_totals([line("A", 7, price=3.33, discount=2.5, tax=19)], surcharge=4.2)
        assert totals.total == pytest.approx(totals.subtotal - totals.discount_total + totals.tax_total, abs=0.01)

    def test_mismatched_server_total_is_flagged(self):
        ln = LineItem(product_ref="A", quantity=1, unit_price=100.0, computed_subtotal=100.0,
                      computed_tax=19.0, computed_total=125.0)
        totals, warnings = compute_document_totals([ln])
        assert totals.total == pytest.approx(119.0)
        assert [w.code for w in warnings] == ["TOTAL_MISMATCH"]

    def test_empty(self):
        totals, warnings = compute_document_totals([])
        assert totals.total == 0.0
        assert warnings == []


class TestApplyTotals:
    def test_returns_copy(self):
        o = order(line("A", 2, price=10.0, tax=10))
        updated, _ = apply_totals(o)
        assert o.total == 0.0
        assert updated.total == pytest.approx(22.0)
        assert check_monetary_identity(updated)

    def test_identity_check_detects_drift(self):
        o, _ = apply_totals(order(line("A", 2, price=10.0)))
        assert not check_monetary_identity(o.model_copy(update={"total": o.total + 1}))
