"""Moteur de rapprochement des quantités: fonctions pures, sans I/O.

Pour un document d'origine et les documents déjà créés contre lui, calcule
par ligne : consommé = somme des quantités dépendantes, restant = max(0,
origine - consommé). Ne modifie jamais ses entrées.
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Mapping, Sequence, Tuple, TypeVar

from salesflow.errors import BoundKind, LineViolation, ValidationError
from salesflow.models.common import QTY_EPSILON, IntegrityWarning
from salesflow.models.document import SalesDocument
from salesflow.models.line import LineItem
from salesflow.models.results import LineKey, ReconciledLine, Reconciliation

KeyFn = Callable[[LineItem], LineKey]
L = TypeVar("L", bound=LineItem)

_BOUND_LABELS = {
    "pending": "pending amount",
    "returnable": "returnable amount",
    "stock": "available stock",
}


def product_key(line: LineItem) -> LineKey:
    return (line.product_ref, None)


def traced_key(line: LineItem) -> LineKey:
    """Clé produit + livraison source (lignes de facture / d'avoir)."""
    return (line.product_ref, getattr(line, "source_delivery_id", None))


def reconcile(
    origin_lines: Sequence[LineItem],
    dependents: Iterable[SalesDocument],
    key: KeyFn = product_key,
) -> Reconciliation:
    ordered: Dict[LineKey, float] = {}
    for ln in origin_lines:
        k = key(ln)
        ordered[k] = ordered.get(k, 0.0) + ln.quantity

    consumed: Dict[LineKey, float] = {k: 0.0 for k in ordered}
    warnings: List[IntegrityWarning] = []
    unloaded: List[str] = []

    for doc in dependents:
        if doc.lines is None:
            # lignes pas encore chargées : consommation nulle, jamais d'exception
            unloaded.append(doc.id)
            warnings.append(IntegrityWarning(
                code="UNLOADED_LINES",
                message=f"lines of {doc.number or doc.id} are not loaded; counted as zero",
                document_id=doc.id,
            ))
            continue
        for ln in doc.lines:
            k = key(ln)
            if k not in ordered:
                warnings.append(IntegrityWarning(
                    code="UNKNOWN_LINE",
                    message=f"{ln.product_ref} in {doc.number or doc.id} has no matching origin line",
                    document_id=doc.id,
                    product_ref=ln.product_ref,
                ))
                continue
            consumed[k] += ln.quantity

    lines: List[ReconciledLine] = []
    for k, qty in ordered.items():
        used = consumed[k]
        over = used > qty + QTY_EPSILON
        if over:
            warnings.append(IntegrityWarning(
                code="OVER_CONSUMED",
                message=f"{k[0]}: consumed {used:g} exceeds {qty:g}",
                product_ref=k[0],
                details={"quantity": qty, "consumed": used},
            ))
        lines.append(ReconciledLine(
            product_ref=k[0],
            source_ref=k[1],
            quantity=qty,
            consumed=used,
            remaining=max(0.0, qty - used),
            over_consumed=over,
        ))
    return Reconciliation(lines=lines, warnings=warnings, unloaded_ids=unloaded)


def _bound_message(product_ref: str, requested: float, bound: float, bound_kind: BoundKind) -> str:
    label = _BOUND_LABELS.get(bound_kind, bound_kind)
    return f"{product_ref}: quantity {requested:g} exceeds {label} of {bound:g}"


def check_requested(
    bounds: Mapping[LineKey, float],
    requested: Mapping[LineKey, float],
    bound_kind: BoundKind = "pending",
) -> None:
    """Lève ValidationError en listant chaque ligne hors borne."""
    violations: List[LineViolation] = []
    for k, qty in requested.items():
        if k not in bounds:
            violations.append(LineViolation(
                product_ref=k[0], requested=qty, bound=0.0, bound_kind=bound_kind,
                message=f"{k[0]}: not part of the origin document",
            ))
            continue
        bound = bounds[k]
        if qty > bound + QTY_EPSILON:
            violations.append(LineViolation(
                product_ref=k[0], requested=qty, bound=bound, bound_kind=bound_kind,
                message=_bound_message(k[0], qty, bound, bound_kind),
            ))
    if violations:
        raise ValidationError("requested quantities out of bounds", violations)


def clamp_requested(
    bounds: Mapping[LineKey, float],
    requested: Mapping[LineKey, float],
    bound_kind: BoundKind = "pending",
) -> Tuple[Dict[LineKey, float], List[IntegrityWarning]]:
    """Ramène chaque quantité demandée à sa borne, avec un avertissement."""
    out: Dict[LineKey, float] = {}
    warnings: List[IntegrityWarning] = []
    for k, qty in requested.items():
        bound = max(0.0, bounds.get(k, 0.0))
        if qty > bound + QTY_EPSILON:
            warnings.append(IntegrityWarning(
                code="QUANTITY_CLAMPED",
                message=_bound_message(k[0], qty, bound, bound_kind) + "; adjusted",
                product_ref=k[0],
                details={"requested": qty, "applied": bound, "bound_kind": bound_kind},
            ))
            qty = bound
        out[k] = qty
    return out, warnings


def bounds_of(reconciliation: Reconciliation) -> Dict[LineKey, float]:
    return {ln.key: ln.remaining for ln in reconciliation.lines}


def split_over_origin(
    lines: Sequence[L],
    k: LineKey,
    quantity: float,
    consumed: float = 0.0,
    key: KeyFn = product_key,
) -> List[Tuple[L, float]]:
    """Répartit une quantité sur les lignes d'origine de même clé, dans l'ordre.

    La consommation existante remplit d'abord les premières lignes ; chaque
    ligne garde ainsi son prix, sa remise et sa taxe. Un excédent éventuel
    reste sur la dernière ligne.
    """
    matching = [ln for ln in lines if key(ln) == k]
    out: List[Tuple[L, float]] = []
    already = consumed
    left = quantity
    for i, ln in enumerate(matching):
        used = min(ln.quantity, max(0.0, already))
        already -= used
        room = ln.quantity - used
        take = left if i == len(matching) - 1 else min(left, room)
        if take > QTY_EPSILON:
            out.append((ln, take))
            left -= take
        if left <= QTY_EPSILON:
            break
    return out
