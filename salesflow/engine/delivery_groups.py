"""Regroupement des livraisons par commande: fonctions pures.

Une livraison dont la commande ne se résout pas forme son propre groupe
(orphelin) au lieu d'être écartée.
"""
from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List

from salesflow.models.common import IntegrityWarning
from salesflow.models.delivery import Delivery
from salesflow.models.order import Order
from salesflow.models.results import DeliveryGroup, GroupStatus


def aggregate_status(deliveries: Iterable[Delivery]) -> GroupStatus:
    """Toutes livrées -> complete ; au moins une -> current ; aucune -> incomplete."""
    live = [d for d in deliveries if d.status != "CANCELLED"]
    delivered = sum(1 for d in live if d.status == "DELIVERED")
    if live and delivered == len(live):
        return "complete"
    if delivered:
        return "current"
    return "incomplete"


def group_deliveries(deliveries: Iterable[Delivery], orders: Iterable[Order]) -> List[DeliveryGroup]:
    orders_by_id: Dict[str, Order] = {o.id: o for o in orders}
    groups: Dict[str, DeliveryGroup] = {}

    for d in deliveries:
        order = orders_by_id.get(d.order_id) if d.order_id else None
        if order is not None:
            key = order.id
            if key not in groups:
                groups[key] = DeliveryGroup(key=key, order=order)
        else:
            key = f"orphan-{d.id}"
            if d.order_id:
                msg = f"delivery {d.number or d.id} references unknown order {d.order_id}"
            else:
                msg = f"delivery {d.number or d.id} has no order"
            groups[key] = DeliveryGroup(key=key, warnings=[IntegrityWarning(
                code="ORPHAN_REFERENCE", message=msg, document_id=d.id,
                details={"order_id": d.order_id},
            )])
        groups[key].deliveries.append(d)

    out: List[DeliveryGroup] = []
    for g in groups.values():
        members = sorted(g.deliveries, key=lambda d: d.date)
        out.append(g.model_copy(update={
            "deliveries": members,
            "status": aggregate_status(members),
            "latest_date": members[-1].date if members else None,
        }))
    out.sort(key=lambda g: g.latest_date or date.min, reverse=True)
    return out
