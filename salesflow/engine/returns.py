"""Rapprochement des retours (avoirs) contre une facture.

Le restant retournable se calcule ligne à ligne (produit + livraison source)
avec les avoirs non annulés comme dépendants. Les quantités demandées au-delà
sont ramenées à la borne, avec un avertissement.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from salesflow.errors import LineViolation, ValidationError
from salesflow.models.common import MONEY_TOLERANCE, QTY_EPSILON, IntegrityWarning
from salesflow.models.credit_note import CreditNote
from salesflow.models.invoice import Invoice
from salesflow.models.line import CreditNoteLine, InvoiceLine
from salesflow.models.results import LineKey, Reconciliation, ReturnRequest
from salesflow.engine.reconciliation import bounds_of, clamp_requested, reconcile, split_over_origin, traced_key
from salesflow.engine.totals import apply_totals

DEFAULT_RETURNABLE_STATUSES = ("ACCEPTED",)


def live_credit_notes(invoice: Invoice, notes: Iterable[CreditNote]) -> List[CreditNote]:
    return [n for n in notes if n.invoice_id == invoice.id and n.status != "VOIDED"]


def returnable_lines(invoice: Invoice, notes: Iterable[CreditNote]) -> Reconciliation:
    return reconcile(invoice.lines or [], live_credit_notes(invoice, notes), key=traced_key)


def return_status(invoice: Invoice, notes: Iterable[CreditNote]) -> Optional[str]:
    rec = returnable_lines(invoice, notes)
    if not any(ln.consumed > QTY_EPSILON for ln in rec.lines):
        return None
    return "FULL_RETURN" if rec.all_exhausted else "PARTIAL_RETURN"


def _allocate(
    requests: Sequence[ReturnRequest],
    rec: Reconciliation,
    default_reason: Optional[str] = None,
) -> Tuple[Dict[LineKey, float], Dict[LineKey, str], List[LineViolation]]:
    """Répartit chaque demande sur les lignes de facture.

    Sans livraison source, la quantité est répartie sur les lignes du produit
    dans l'ordre de la facture ; le dépassement reste sur la dernière ligne
    pour être ramené à la borne ensuite."""
    requested: Dict[LineKey, float] = {}
    reasons: Dict[LineKey, str] = {}
    problems: List[LineViolation] = []

    for req in requests:
        if req.quantity < 0:
            problems.append(LineViolation(product_ref=req.product_ref, requested=req.quantity, bound=0.0,
                                          bound_kind="returnable",
                                          message=f"{req.product_ref}: quantity cannot be negative"))
            continue
        if req.quantity <= QTY_EPSILON:
            continue
        reason = (req.reason or "").strip() or (default_reason or "").strip()
        if not reason:
            problems.append(LineViolation(product_ref=req.product_ref, bound_kind="selection",
                                          message=f"{req.product_ref}: a return reason is required"))
            continue
        if req.source_delivery_id is not None:
            candidates = [ln for ln in rec.lines if ln.key == (req.product_ref, req.source_delivery_id)]
        else:
            candidates = [ln for ln in rec.lines if ln.product_ref == req.product_ref]
        if not candidates:
            problems.append(LineViolation(product_ref=req.product_ref, requested=req.quantity, bound=0.0,
                                          bound_kind="returnable",
                                          message=f"{req.product_ref}: not a line of this invoice"))
            continue

        left = req.quantity
        for i, ln in enumerate(candidates):
            already = requested.get(ln.key, 0.0)
            room = max(0.0, ln.remaining - already)
            take = left if i == len(candidates) - 1 else min(left, room)
            if take <= QTY_EPSILON:
                continue
            requested[ln.key] = already + take
            reasons.setdefault(ln.key, reason)
            left -= take
            if left <= QTY_EPSILON:
                break
    return requested, reasons, problems


def _credit_line(src: InvoiceLine, qty: float, reason: str) -> CreditNoteLine:
    data = src.model_dump()
    full = abs(qty - src.quantity) <= QTY_EPSILON
    if not full:
        # valeurs serveur valables pour la quantité facturée seulement
        data.update(computed_subtotal=None, computed_tax=None, computed_total=None)
    data.update(quantity=qty, reason=reason)
    return CreditNoteLine(**data)


def build_credit_note(
    invoice: Invoice,
    notes: Iterable[CreditNote],
    requests: Sequence[ReturnRequest],
    reason: Optional[str] = None,
    number: Optional[str] = None,
    returnable_statuses: Sequence[str] = DEFAULT_RETURNABLE_STATUSES,
    tolerance: float = MONEY_TOLERANCE,
) -> Tuple[CreditNote, List[IntegrityWarning]]:
    """Avoir borné par le restant retournable de chaque ligne de facture."""
    if invoice.status not in returnable_statuses:
        raise ValidationError(
            f"invoice {invoice.number or invoice.id} is {invoice.status}; "
            f"credit notes need one of {', '.join(returnable_statuses)}"
        )
    if invoice.lines is None:
        raise ValidationError(f"lines of invoice {invoice.number or invoice.id} are not loaded")

    notes = list(notes)
    rec = returnable_lines(invoice, notes)
    if rec.unloaded_ids:
        raise ValidationError("previous credit notes must be loaded before a new return",
                              [LineViolation(bound_kind="returnable", message=f"credit note {i} has no lines loaded")
                               for i in rec.unloaded_ids])

    requested, reasons, problems = _allocate(requests, rec, default_reason=reason)
    if problems:
        raise ValidationError("invalid return request", problems)

    applied, warnings = clamp_requested(bounds_of(rec), requested, bound_kind="returnable")
    lines: List[CreditNoteLine] = []
    for k, qty in applied.items():
        if qty <= QTY_EPSILON:
            continue
        line = rec.get(k)
        consumed = line.consumed if line is not None else 0.0
        for src, part in split_over_origin(invoice.lines or [], k, qty, consumed, key=traced_key):
            lines.append(_credit_line(src, part, reasons[k]))
    if not lines:
        raise ValidationError("nothing left to return on this invoice", [
            LineViolation(bound_kind="returnable", bound=rec.total_remaining,
                          message=f"remaining returnable quantity is {rec.total_remaining:g}"),
        ])

    returned_now = sum(ln.quantity for ln in lines)
    kind = "TOTAL_RETURN" if returned_now >= rec.total_remaining - QTY_EPSILON else "PARTIAL_RETURN"
    main_reason = (reason or "").strip() or lines[0].reason
    note = CreditNote(
        number=number,
        client_ref=invoice.client_ref,
        invoice_id=invoice.id,
        lines=lines,
        reason=main_reason,
        kind=kind,
    )
    note, total_warnings = apply_totals(note, tolerance)
    for w in warnings:
        w.document_id = invoice.id
    return note, warnings + total_warnings


def total_return_requests(invoice: Invoice, notes: Iterable[CreditNote], reason: str) -> List[ReturnRequest]:
    """Chaque ligne à son restant retournable complet ; rejet si tout est déjà retourné."""
    rec = returnable_lines(invoice, notes)
    reqs = [
        ReturnRequest(product_ref=ln.product_ref, source_delivery_id=ln.source_ref,
                      quantity=ln.remaining, reason=reason)
        for ln in rec.lines if ln.remaining > QTY_EPSILON
    ]
    if not reqs:
        raise ValidationError(f"invoice {invoice.number or invoice.id} has already been fully returned")
    return reqs
