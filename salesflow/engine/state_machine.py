"""Machine à états des documents de vente.

Chaque transition renvoie une copie du document ; l'entrée n'est jamais
modifiée. Une transition depuis un état non source lève InvalidTransition :
c'est à l'appelant de décider s'il l'affiche ou l'ignore (double clic).
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Optional, Sequence, Tuple, TypeVar

from salesflow.errors import InvalidTransition, LineViolation, ValidationError
from salesflow.models.common import MONEY_TOLERANCE
from salesflow.models.credit_note import CreditNote
from salesflow.models.delivery import Delivery
from salesflow.models.document import SalesDocument
from salesflow.models.invoice import Invoice
from salesflow.models.order import Order
from salesflow.models.quote import Quote
from salesflow.engine.reconciliation import product_key, reconcile
from salesflow.engine.totals import apply_totals

D = TypeVar("D", bound=SalesDocument)

Transitions = Dict[str, FrozenSet[str]]

QUOTE_TRANSITIONS: Transitions = {
    "DRAFT": frozenset({"SENT", "REJECTED"}),
    "SENT": frozenset({"APPROVED", "REJECTED", "EXPIRED"}),
}

ORDER_TRANSITIONS: Transitions = {
    "DRAFT": frozenset({"SENT", "CONFIRMED", "CANCELLED"}),
    "SENT": frozenset({"CONFIRMED", "CANCELLED"}),
    "CONFIRMED": frozenset({"IN_PROGRESS", "CANCELLED"}),
    "IN_PROGRESS": frozenset({"PARTIALLY_DELIVERED", "DELIVERED", "CANCELLED"}),
    "PARTIALLY_DELIVERED": frozenset({"IN_PROGRESS", "DELIVERED"}),
    # uniquement par re-dérivation après annulation d'une livraison
    "DELIVERED": frozenset({"PARTIALLY_DELIVERED", "IN_PROGRESS"}),
}

DELIVERY_TRANSITIONS: Transitions = {
    "DRAFT": frozenset({"IN_TRANSIT", "DELIVERED", "CANCELLED"}),
    "IN_TRANSIT": frozenset({"DELIVERED", "CANCELLED"}),
}

INVOICE_TRANSITIONS: Transitions = {
    "DRAFT": frozenset({"SENT", "VOIDED"}),
    "SENT": frozenset({"ACCEPTED", "REJECTED"}),
    "ACCEPTED": frozenset({"VOIDED"}),
}

CREDIT_NOTE_TRANSITIONS: Transitions = {
    "ISSUED": frozenset({"VOIDED"}),
}

TRANSITIONS: Dict[type, Tuple[str, Transitions]] = {
    Quote: ("quote", QUOTE_TRANSITIONS),
    Order: ("order", ORDER_TRANSITIONS),
    Delivery: ("delivery", DELIVERY_TRANSITIONS),
    Invoice: ("invoice", INVOICE_TRANSITIONS),
    CreditNote: ("credit_note", CREDIT_NOTE_TRANSITIONS),
}

ORDER_DELIVERABLE = frozenset({"CONFIRMED", "IN_PROGRESS", "PARTIALLY_DELIVERED"})
ORDER_DERIVABLE = ORDER_DELIVERABLE | {"DELIVERED"}
DELIVERY_EDITABLE = frozenset({"DRAFT", "IN_TRANSIT"})


def _table_for(doc: SalesDocument) -> Tuple[str, Transitions]:
    for cls, entry in TRANSITIONS.items():
        if isinstance(doc, cls):
            return entry
    raise TypeError(f"No state machine for {type(doc).__name__}")


def can_transition(doc: SalesDocument, target: str) -> bool:
    _, table = _table_for(doc)
    return target in table.get(doc.status, frozenset())


def ensure_transition(doc: SalesDocument, target: str) -> None:
    kind, table = _table_for(doc)
    if target not in table.get(doc.status, frozenset()):
        raise InvalidTransition(kind, doc.id, doc.status, target)


def transition(doc: D, target: str, **updates) -> D:
    ensure_transition(doc, target)
    return doc.model_copy(update={"status": target, **updates}, deep=True)


# ----- Devis ----- #

def approve_quote(
    quote: Quote,
    approved_refs: Iterable[str],
    order_number: Optional[str] = None,
    now: Optional[datetime] = None,
    tolerance: float = MONEY_TOLERANCE,
) -> Tuple[Quote, Order]:
    """SENT -> APPROVED ; produit exactement une commande contenant les
    lignes approuvées, prix / remise / taxe repris à l'identique."""
    ensure_transition(quote, "APPROVED")
    refs = list(dict.fromkeys(r for r in approved_refs if r))
    if not refs:
        raise ValidationError("approval requires at least one line", [
            LineViolation(bound_kind="selection", message="no line selected for approval"),
        ])
    if quote.lines is None:
        raise ValidationError(f"lines of quote {quote.number or quote.id} are not loaded")

    known = {ln.product_ref for ln in quote.lines}
    unknown = [r for r in refs if r not in known]
    if unknown:
        raise ValidationError("approved lines must belong to the quote", [
            LineViolation(product_ref=r, bound_kind="selection", message=f"{r}: not a line of this quote")
            for r in unknown
        ])

    selected = set(refs)
    order_lines = [ln.model_copy(deep=True) for ln in quote.lines if ln.product_ref in selected]
    order = Order(
        number=order_number,
        client_ref=quote.client_ref,
        quote_id=quote.id,
        status="SENT",
        lines=order_lines,
        surcharge=quote.surcharge,
        expected_delivery_date=quote.valid_until,
        notes=f"Order created from quote {quote.number or quote.id}",
    )
    order, _ = apply_totals(order, tolerance)
    approved = transition(
        quote, "APPROVED",
        approved_line_refs=refs,
        order_id=order.id,
        decided_at=now or datetime.utcnow(),
    )
    return approved, order


# ----- Commandes ----- #

def live_deliveries(deliveries: Iterable[Delivery]) -> list[Delivery]:
    return [d for d in deliveries if d.status != "CANCELLED"]


def derive_order_status(order: Order, deliveries: Sequence[Delivery]) -> str:
    """Statut de commande dérivé de la couverture par les livraisons non annulées."""
    if order.status not in ORDER_DERIVABLE:
        return order.status
    live = [d for d in live_deliveries(deliveries) if d.order_id == order.id]
    if not live:
        # plus aucune livraison active : retour en cours si la commande avait démarré
        return order.status if order.status == "CONFIRMED" else "IN_PROGRESS"
    rec = reconcile(order.lines or [], live, key=product_key)
    if rec.all_exhausted:
        return "DELIVERED"
    if rec.any_exhausted:
        return "PARTIALLY_DELIVERED"
    return "IN_PROGRESS"


def apply_order_status(order: Order, deliveries: Sequence[Delivery]) -> Order:
    """Applique le statut dérivé en passant par IN_PROGRESS depuis CONFIRMED."""
    target = derive_order_status(order, deliveries)
    if target == order.status:
        return order
    if order.status == "CONFIRMED":
        order = transition(order, "IN_PROGRESS")
        if target == "IN_PROGRESS":
            return order
    return transition(order, target)


def ensure_cancellable(order: Order, deliveries: Sequence[Delivery]) -> None:
    live = [d for d in live_deliveries(deliveries) if d.order_id == order.id]
    if live:
        numbers = ", ".join(d.number or d.id for d in live)
        raise ValidationError(f"order {order.number or order.id} has active deliveries ({numbers})")
    ensure_transition(order, "CANCELLED")


# ----- Livraisons ----- #

def ensure_editable(delivery: Delivery) -> None:
    """Une livraison DELIVERED (ou annulée) est immuable."""
    if delivery.status not in DELIVERY_EDITABLE:
        raise InvalidTransition("delivery", delivery.id, delivery.status, "EDIT")


def mark_delivered(delivery: Delivery, now: Optional[datetime] = None) -> Delivery:
    return transition(delivery, "DELIVERED", delivered_at=now or datetime.utcnow())
