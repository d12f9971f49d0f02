from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from salesflow.engine.delivery_groups import group_deliveries
from salesflow.engine.reconciliation import (
    bounds_of,
    check_requested,
    clamp_requested,
    split_over_origin,
)
from salesflow.engine.state_machine import (
    ORDER_DELIVERABLE,
    apply_order_status,
    ensure_editable,
    live_deliveries,
    mark_delivered,
    transition,
)
from salesflow.engine.totals import apply_totals
from salesflow.errors import InvalidTransition, LineViolation, ValidationError
from salesflow.models.common import QTY_EPSILON, IntegrityWarning
from salesflow.models.delivery import Delivery, LogisticData
from salesflow.models.line import LineItem
from salesflow.models.order import Order
from salesflow.models.results import DeliveryGroup, DeliveryRequest, LineKey, OperationResult, Reconciliation
from salesflow.services.catalog_service import CatalogService
from salesflow.services.numbering_service import NumberingService
from salesflow.services.order_service import OrderService
from salesflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)

RequestLike = Union[DeliveryRequest, Mapping[str, Any]]


def _requested(lines: Iterable[RequestLike]) -> Dict[LineKey, float]:
    out: Dict[LineKey, float] = {}
    problems: List[LineViolation] = []
    for raw in lines:
        req = raw if isinstance(raw, DeliveryRequest) else DeliveryRequest.model_validate(raw)
        if req.quantity < 0:
            problems.append(LineViolation(product_ref=req.product_ref, requested=req.quantity, bound=0.0,
                                          message=f"{req.product_ref}: quantity cannot be negative"))
            continue
        if req.quantity <= QTY_EPSILON:
            continue
        k = (req.product_ref, None)
        out[k] = out.get(k, 0.0) + req.quantity
    if problems:
        raise ValidationError("invalid delivery lines", problems)
    if not out:
        raise ValidationError("a delivery needs at least one line with a quantity", [
            LineViolation(bound_kind="selection", message="no quantity entered"),
        ])
    return out


def _line_from_order(src: LineItem, qty: float) -> LineItem:
    update: Dict[str, Any] = {"quantity": qty}
    if abs(qty - src.quantity) > QTY_EPSILON:
        # les valeurs serveur de la commande ne valent que pour sa quantité
        update.update(computed_subtotal=None, computed_tax=None, computed_total=None)
    return LineItem(**{**src.model_dump(), **update})


def _lines_from_order(order: Order, rec: Reconciliation, applied: Dict[LineKey, float]) -> List[LineItem]:
    """Une ligne de livraison par ligne de commande servie (prix propres à chaque ligne)."""
    out: List[LineItem] = []
    for k, qty in applied.items():
        line = rec.get(k)
        consumed = line.consumed if line is not None else 0.0
        for src, part in split_over_origin(order.lines or [], k, qty, consumed):
            out.append(_line_from_order(src, part))
    return out


class DeliveryService:
    def __init__(
        self,
        store: DocumentStore,
        numbering: NumberingService,
        orders: OrderService,
        catalog: Optional[CatalogService] = None,
    ) -> None:
        self.store = store
        self.numbering = numbering
        self.orders = orders
        self.catalog = catalog

    def get(self, delivery_id: str) -> Delivery:
        d = self.store.get_delivery(delivery_id)
        return d if d.lines is not None else self.store.load_lines(d)

    # ----- Contrôles ----- #

    def _bounded(
        self,
        rec: Reconciliation,
        requested: Dict[LineKey, float],
        clamp: bool,
    ) -> Tuple[Dict[LineKey, float], List[IntegrityWarning]]:
        warnings: List[IntegrityWarning] = []
        if clamp:
            requested, warnings = clamp_requested(bounds_of(rec), requested, bound_kind="pending")
        else:
            check_requested(bounds_of(rec), requested, bound_kind="pending")
        if self.catalog is not None:
            stock = self.catalog.stock_bounds(k[0] for k in requested)
            check_requested(
                {(ref, None): qty for ref, qty in stock.items()},
                {k: q for k, q in requested.items() if k[0] in stock},
                bound_kind="stock",
            )
        return {k: q for k, q in requested.items() if q > QTY_EPSILON}, warnings

    def _sync_order(self, order: Order) -> Order:
        deliveries = self.store.ensure_lines(self.store.list_deliveries(order_id=order.id))
        updated = apply_order_status(order, deliveries)
        if updated.status != order.status:
            self.store.save(updated)
            logger.info("Order %s: %s -> %s", order.number, order.status, updated.status)
        return updated

    # ----- Création ----- #

    def create_delivery(
        self,
        order_id: str,
        lines: Sequence[RequestLike],
        logistics: Optional[LogisticData] = None,
        *,
        clamp: bool = False,
    ) -> OperationResult[Delivery]:
        """Livraison contre une commande, bornée par le restant à livrer et le stock.

        clamp=False : tout dépassement est rejeté (ValidationError).
        clamp=True  : les quantités sont ramenées au restant, avec avertissement.
        """
        order = self.orders.get(order_id)
        if order.status not in ORDER_DELIVERABLE:
            raise InvalidTransition("order", order.id, order.status, "DELIVER")

        rec = self.orders.pending_lines(order.id)
        if not rec.trustworthy:
            raise ValidationError("delivery lines could not be loaded for order " + (order.number or order.id))
        applied, warnings = self._bounded(rec, _requested(lines), clamp)
        if not applied:
            raise ValidationError("nothing left to deliver on order " + (order.number or order.id))

        new_lines = _lines_from_order(order, rec, applied)
        fully = all(abs(applied.get(ln.key, 0.0) - ln.remaining) <= QTY_EPSILON for ln in rec.lines)
        delivery = Delivery(
            number=self.numbering.next_number("delivery"),
            client_ref=order.client_ref,
            order_id=order.id,
            lines=new_lines,
            logistics=logistics or LogisticData(),
            shipment_scope="FULL" if fully else "PARTIAL",
        )
        delivery, total_warnings = apply_totals(delivery, self.numbering.settings.money_tolerance)
        self.store.save(delivery)
        logger.info("Delivery %s created for order %s (%s)", delivery.number, order.number, delivery.shipment_scope)
        self._sync_order(order)
        return OperationResult(value=delivery, warnings=rec.warnings + warnings + total_warnings)

    # ----- Édition (DRAFT / IN_TRANSIT uniquement) ----- #

    def update_lines(self, delivery_id: str, lines: Sequence[RequestLike], *, clamp: bool = False) -> OperationResult[Delivery]:
        delivery = self.get(delivery_id)
        ensure_editable(delivery)
        order = self.store.find_order(delivery.order_id)
        if order is None:
            raise ValidationError(f"delivery {delivery.number or delivery.id} has no resolvable order")
        order = self.orders.get(order.id)
        rec = self.orders.pending_lines(order.id, exclude_delivery_id=delivery.id)
        applied, warnings = self._bounded(rec, _requested(lines), clamp)
        new_lines = _lines_from_order(order, rec, applied)
        updated, total_warnings = apply_totals(
            delivery.model_copy(update={"lines": new_lines}), self.numbering.settings.money_tolerance,
        )
        self.store.save(updated)
        self._sync_order(order)
        return OperationResult(value=updated, warnings=warnings + total_warnings)

    # ----- Transitions ----- #

    def dispatch(self, delivery_id: str, logistics: Optional[LogisticData] = None) -> Delivery:
        d = self.get(delivery_id)
        updates = {"logistics": logistics} if logistics is not None else {}
        d = transition(d, "IN_TRANSIT", **updates)
        self.store.save(d)
        return d

    def mark_delivered(self, delivery_id: str) -> Delivery:
        """Transition à sens unique : rend la livraison facturable."""
        d = mark_delivered(self.get(delivery_id))
        self.store.save(d)
        logger.info("Delivery %s delivered", d.number)
        order = self.store.find_order(d.order_id)
        if order is not None:
            self._sync_order(self.orders.get(order.id))
        return d

    def cancel_delivery(self, delivery_id: str) -> Delivery:
        d = transition(self.get(delivery_id), "CANCELLED")
        self.store.save(d)
        logger.info("Delivery %s cancelled", d.number)
        order = self.store.find_order(d.order_id)
        if order is not None:
            self._sync_order(self.orders.get(order.id))
        return d

    # ----- Vues ----- #

    def groups(self) -> List[DeliveryGroup]:
        groups = group_deliveries(self.store.list_deliveries(), self.store.list_orders())
        for g in groups:
            for w in g.warnings:
                logger.warning(w.message)
        return groups

    def live_for_order(self, order_id: str) -> List[Delivery]:
        return live_deliveries(self.store.list_deliveries(order_id=order_id))
