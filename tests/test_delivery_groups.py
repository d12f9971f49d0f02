"""Tests for engine.delivery_groups: per-order aggregation."""

from datetime import date

from salesflow.engine.delivery_groups import aggregate_status, group_deliveries

from conftest import ACME, delivery, line, order


class TestAggregateStatus:
    def test_all_delivered(self):
        o = order(line("A", 2))
        assert aggregate_status([delivery(o, line("A", 1)), delivery(o, line("A", 1))]) == "complete"

    def test_some_delivered(self):
        o = order(line("A", 2))
        assert aggregate_status([delivery(o, line("A", 1)), delivery(o, line("A", 1), status="IN_TRANSIT")]) == "current"

    def test_none_delivered(self):
        o = order(line("A", 2))
        assert aggregate_status([delivery(o, line("A", 1), status="DRAFT")]) == "incomplete"

    def test_cancelled_members_ignored(self):
        o = order(line("A", 2))
        members = [delivery(o, line("A", 1)), delivery(o, line("A", 1), status="CANCELLED")]
        assert aggregate_status(members) == "complete"


class TestGroupDeliveries:
    def test_grouped_by_order_and_sorted(self):
        o1 = order(line("A", 5))
        o2 = order(line("B", 5))
        deliveries = [
            delivery(o1, line("A", 1), on=date(2024, 1, 10)),
            delivery(o2, line("B", 1), on=date(2024, 2, 1), status="IN_TRANSIT"),
            delivery(o1, line("A", 1), on=date(2024, 1, 5)),
        ]
        groups = group_deliveries(deliveries, [o1, o2])
        assert [g.key for g in groups] == [o2.id, o1.id]
        assert groups[0].status == "incomplete"
        assert groups[1].status == "complete"
        assert [d.date for d in groups[1].deliveries] == [date(2024, 1, 5), date(2024, 1, 10)]
        assert groups[1].latest_date == date(2024, 1, 10)

    def test_orphans_become_singleton_groups(self):
        o = order(line("A", 5))
        stale = delivery(o, line("A", 1), on=date(2024, 3, 2))
        stale = stale.model_copy(update={"order_id": "deleted-order"})
        unlinked = delivery(None, line("A", 1), client=ACME, on=date(2024, 3, 1))
        groups = group_deliveries([stale, unlinked], [o])
        assert [g.key for g in groups] == [f"orphan-{stale.id}", f"orphan-{unlinked.id}"]
        assert all(g.is_orphan for g in groups)
        assert all(g.warnings[0].code == "ORPHAN_REFERENCE" for g in groups)

    def test_empty(self):
        assert group_deliveries([], []) == []
