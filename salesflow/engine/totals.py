"""Calcul des totaux de ligne et de document: fonctions pures.

Les valeurs calculées côté serveur (computed_*) sont reprises telles quelles :
on ne recalcule jamais un total qui fait déjà foi.
"""
from __future__ import annotations

from typing import Iterable, List, Tuple, TypeVar

from salesflow.models.common import MONEY_TOLERANCE, IntegrityWarning
from salesflow.models.document import SalesDocument
from salesflow.models.line import DocumentTotals, LineItem, LineTotals

D = TypeVar("D", bound=SalesDocument)


def compute_line_totals(line: LineItem) -> LineTotals:
    gross = line.unit_price * line.quantity
    discount = gross * line.discount_percent / 100
    if line.computed_subtotal is not None:
        subtotal = line.computed_subtotal
    else:
        subtotal = gross - discount
    if line.computed_tax is not None:
        tax = line.computed_tax
    else:
        tax = subtotal * line.tax_percent / 100
    if line.computed_total is not None:
        total = line.computed_total
    else:
        total = subtotal + tax
    return LineTotals(gross=subtotal + discount, discount=discount, subtotal=subtotal, tax=tax, total=total)


def compute_document_totals(
    lines: Iterable[LineItem],
    surcharge: float = 0.0,
    tolerance: float = MONEY_TOLERANCE,
) -> Tuple[DocumentTotals, List[IntegrityWarning]]:
    """Somme des lignes + surcharge document. ``total`` respecte toujours
    l'identité subtotal - remise + taxe ; un écart avec des totaux de ligne
    serveur est signalé, pas corrigé."""
    subtotal = discount_total = tax_total = lines_total = 0.0
    for ln in lines:
        t = compute_line_totals(ln)
        subtotal += t.gross
        discount_total += t.discount
        tax_total += t.tax
        lines_total += t.total
    subtotal += surcharge
    total = subtotal - discount_total + tax_total

    warnings: List[IntegrityWarning] = []
    if abs((lines_total + surcharge) - total) > tolerance:
        warnings.append(IntegrityWarning(
            code="TOTAL_MISMATCH",
            message=f"line totals sum to {lines_total + surcharge:.2f} but document identity gives {total:.2f}",
            details={"lines_total": lines_total + surcharge, "identity_total": total},
        ))
    totals = DocumentTotals(subtotal=subtotal, discount_total=discount_total, tax_total=tax_total, total=total)
    return totals, warnings


def apply_totals(doc: D, tolerance: float = MONEY_TOLERANCE) -> Tuple[D, List[IntegrityWarning]]:
    """Copie du document avec ses totaux recalculés depuis ses propres lignes."""
    totals, warnings = compute_document_totals(doc.lines or [], doc.surcharge, tolerance)
    for w in warnings:
        w.document_id = doc.id
    return doc.model_copy(update=totals.model_dump()), warnings


def check_monetary_identity(doc: SalesDocument, tolerance: float = MONEY_TOLERANCE) -> bool:
    return abs(doc.total - (doc.subtotal - doc.discount_total + doc.tax_total)) <= tolerance
