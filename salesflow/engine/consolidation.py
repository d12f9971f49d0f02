"""Consolidation de livraisons livrées en un brouillon de facture.

Les lignes ne sont pas fusionnées par produit : chaque ligne de facture garde
la livraison qui l'a fournie (source_delivery_id).
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from salesflow.errors import LineViolation, ValidationError
from salesflow.models.common import MONEY_TOLERANCE, ClientRef, IntegrityWarning
from salesflow.models.delivery import Delivery
from salesflow.models.invoice import Invoice
from salesflow.models.line import InvoiceLine
from salesflow.engine.totals import apply_totals

# une facture rejetée libère ses livraisons ; toutes les autres les retiennent
RELEASING_INVOICE_STATUSES = frozenset({"REJECTED"})


def attached_invoices(invoices: Iterable[Invoice]) -> Dict[str, Invoice]:
    """livraison -> facture non rejetée qui la contient."""
    out: Dict[str, Invoice] = {}
    for inv in invoices:
        if inv.status in RELEASING_INVOICE_STATUSES:
            continue
        for did in inv.source_delivery_ids:
            out[did] = inv
    return out


def eligible_deliveries(
    client_ref: ClientRef,
    deliveries: Iterable[Delivery],
    invoices: Iterable[Invoice],
) -> List[Delivery]:
    taken = attached_invoices(invoices)
    return [
        d for d in deliveries
        if d.client_ref == client_ref and d.status == "DELIVERED" and d.id not in taken
    ]


def validate_selection(
    selected: Sequence[Delivery],
    invoices: Iterable[Invoice],
    ignore_invoice_id: Optional[str] = None,
) -> None:
    if not selected:
        raise ValidationError("select at least one delivery", [
            LineViolation(bound_kind="selection", message="no delivery selected"),
        ])
    taken = attached_invoices(i for i in invoices if i.id != ignore_invoice_id)
    client = selected[0].client_ref
    problems: List[LineViolation] = []
    for d in selected:
        label = d.number or d.id
        if d.status != "DELIVERED":
            problems.append(LineViolation(bound_kind="selection", message=f"delivery {label} is {d.status}, not DELIVERED"))
        if d.client_ref != client:
            problems.append(LineViolation(bound_kind="selection", message=f"delivery {label} belongs to client {d.client_ref}, not {client}"))
        if d.id in taken:
            inv = taken[d.id]
            problems.append(LineViolation(bound_kind="selection", message=f"delivery {label} is already on invoice {inv.number or inv.id}"))
        if d.lines is None:
            problems.append(LineViolation(bound_kind="selection", message=f"lines of delivery {label} are not loaded"))
    if problems:
        raise ValidationError("deliveries cannot be invoiced", problems)


def merge_lines(deliveries: Sequence[Delivery]) -> List[InvoiceLine]:
    out: List[InvoiceLine] = []
    for d in deliveries:
        for ln in d.lines or []:
            data = ln.model_dump()
            data["source_delivery_id"] = d.id
            out.append(InvoiceLine(**data))
    return out


def consolidate_invoice(
    selected: Sequence[Delivery],
    invoices: Iterable[Invoice],
    number: Optional[str] = None,
    surcharge: float = 0.0,
    replaces_invoice_id: Optional[str] = None,
    tolerance: float = MONEY_TOLERANCE,
) -> Tuple[Invoice, List[IntegrityWarning]]:
    """Nouvelle facture DRAFT depuis des livraisons DELIVERED du même client."""
    validate_selection(selected, invoices, ignore_invoice_id=replaces_invoice_id)
    invoice = Invoice(
        number=number,
        client_ref=selected[0].client_ref,
        status="DRAFT",
        lines=merge_lines(selected),
        source_delivery_ids=[d.id for d in selected],
        surcharge=surcharge,
        replaces_invoice_id=replaces_invoice_id,
    )
    return apply_totals(invoice, tolerance)


def deliveries_to_rebill(invoice: Invoice, deliveries: Iterable[Delivery]) -> List[Delivery]:
    """Livraisons sous-jacentes d'une facture rejetée, dans l'ordre de la facture."""
    if invoice.status != "REJECTED":
        raise ValidationError(f"invoice {invoice.number or invoice.id} is {invoice.status}, only REJECTED invoices can be rebilled")
    by_id = {d.id: d for d in deliveries}
    return [by_id[i] for i in invoice.source_delivery_ids if i in by_id]
