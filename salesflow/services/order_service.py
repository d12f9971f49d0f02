from __future__ import annotations

import logging
from typing import Optional

from salesflow.engine.reconciliation import product_key, reconcile
from salesflow.engine.state_machine import apply_order_status, ensure_cancellable, live_deliveries, transition
from salesflow.engine.totals import apply_totals
from salesflow.models.order import Order
from salesflow.models.results import OperationResult, Reconciliation
from salesflow.services.numbering_service import NumberingService
from salesflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(self, store: DocumentStore, numbering: NumberingService) -> None:
        self.store = store
        self.numbering = numbering

    def create_order(self, order: Order) -> OperationResult[Order]:
        """Commande saisie directement (sans devis)."""
        if not order.number:
            order = order.model_copy(update={"number": self.numbering.next_number("order")})
        order, warnings = apply_totals(order, self.numbering.settings.money_tolerance)
        self.store.save(order)
        logger.info("Order %s created", order.number)
        return OperationResult(value=order, warnings=warnings)

    def get(self, order_id: str) -> Order:
        order = self.store.get_order(order_id)
        return order if order.lines is not None else self.store.load_lines(order)

    def confirm_order(self, order_id: str) -> Order:
        o = transition(self.get(order_id), "CONFIRMED")
        self.store.save(o)
        logger.info("Order %s confirmed", o.number)
        return o

    def cancel_order(self, order_id: str) -> Order:
        order = self.get(order_id)
        ensure_cancellable(order, self.store.list_deliveries(order_id=order.id))
        o = transition(order, "CANCELLED")
        self.store.save(o)
        logger.info("Order %s cancelled", o.number)
        return o

    def pending_lines(self, order_id: str, exclude_delivery_id: Optional[str] = None) -> Reconciliation:
        """Quantités restant à livrer, toutes livraisons non annulées comprises."""
        order = self.get(order_id)
        siblings = [d for d in live_deliveries(self.store.list_deliveries(order_id=order.id)) if d.id != exclude_delivery_id]
        return reconcile(order.lines or [], self.store.ensure_lines(siblings), key=product_key)

    def refresh_status(self, order_id: str) -> Order:
        order = self.get(order_id)
        deliveries = self.store.ensure_lines(self.store.list_deliveries(order_id=order.id))
        updated = apply_order_status(order, deliveries)
        if updated.status != order.status:
            self.store.save(updated)
            logger.info("Order %s: %s -> %s", order.number, order.status, updated.status)
        return updated
