from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from salesflow.engine.consolidation import consolidate_invoice, deliveries_to_rebill, eligible_deliveries
from salesflow.engine.state_machine import transition
from salesflow.models.common import ClientRef, IntegrityWarning
from salesflow.models.delivery import Delivery
from salesflow.models.invoice import Invoice
from salesflow.models.results import OperationResult
from salesflow.services.numbering_service import NumberingService
from salesflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(self, store: DocumentStore, numbering: NumberingService) -> None:
        self.store = store
        self.numbering = numbering

    def get(self, invoice_id: str) -> Invoice:
        inv = self.store.get_invoice(invoice_id)
        return inv if inv.lines is not None else self.store.load_lines(inv)

    def list_by_client(self, client_ref: ClientRef) -> List[Invoice]:
        return self.store.list_invoices(client_ref=client_ref)

    # ----- Éligibilité ----- #

    def invoiceable_deliveries(self, client_ref: ClientRef) -> List[Delivery]:
        return eligible_deliveries(
            client_ref,
            self.store.list_deliveries(client_ref=client_ref),
            self.store.list_invoices(),
        )

    def _orphan_warnings(self, deliveries: Sequence[Delivery]) -> List[IntegrityWarning]:
        out: List[IntegrityWarning] = []
        for d in deliveries:
            if self.store.find_order(d.order_id) is None:
                w = IntegrityWarning(
                    code="ORPHAN_REFERENCE",
                    message=f"delivery {d.number or d.id} has no resolvable order; invoiced anyway",
                    document_id=d.id,
                    details={"order_id": d.order_id},
                )
                logger.warning(w.message)
                out.append(w)
        return out

    def _commit(self, invoice: Invoice, deliveries: Sequence[Delivery]) -> None:
        self.store.save(invoice)
        for d in deliveries:
            self.store.save(d.model_copy(update={"invoice_id": invoice.id}))

    # ----- Création ----- #

    def create_from_deliveries(self, delivery_ids: Sequence[str], surcharge: float = 0.0) -> OperationResult[Invoice]:
        """Brouillon de facture consolidant des livraisons DELIVERED d'un même client."""
        selected = self.store.ensure_lines([self.store.get_delivery(i) for i in dict.fromkeys(delivery_ids)])
        invoice, warnings = consolidate_invoice(
            selected,
            self.store.list_invoices(),
            surcharge=surcharge,
            tolerance=self.numbering.settings.money_tolerance,
        )
        invoice = invoice.model_copy(update={"number": self.numbering.next_number("invoice")})
        self._commit(invoice, selected)
        logger.info("Invoice %s drafted from %d delivery(ies), total %.2f", invoice.number, len(selected), invoice.total)
        return OperationResult(value=invoice, warnings=self._orphan_warnings(selected) + warnings)

    def rebill_rejected_invoice(self, invoice_id: str) -> OperationResult[Invoice]:
        """Nouvelle facture à partir des livraisons d'une facture rejetée,
        sans revalider les quantités déjà livrées."""
        rejected = self.get(invoice_id)
        deliveries = self.store.ensure_lines(deliveries_to_rebill(rejected, self.store.list_deliveries()))
        invoice, warnings = consolidate_invoice(
            deliveries,
            self.store.list_invoices(),
            surcharge=rejected.surcharge,
            replaces_invoice_id=rejected.id,
            tolerance=self.numbering.settings.money_tolerance,
        )
        invoice = invoice.model_copy(update={"number": self.numbering.next_number("invoice")})
        self._commit(invoice, deliveries)
        logger.info("Invoice %s replaces rejected invoice %s", invoice.number, rejected.number)
        return OperationResult(value=invoice, warnings=self._orphan_warnings(deliveries) + warnings)

    # ----- Transitions ----- #

    def send(self, invoice_id: str) -> Invoice:
        """DRAFT -> SENT : soumission au timbrage externe."""
        inv = transition(self.get(invoice_id), "SENT", sent_at=datetime.utcnow())
        self.store.save(inv)
        logger.info("Invoice %s sent for stamping", inv.number)
        return inv

    def record_stamping(self, invoice_id: str, accepted: bool, reason: Optional[str] = None) -> Invoice:
        inv = self.get(invoice_id)
        if accepted:
            inv = transition(inv, "ACCEPTED", stamped_at=datetime.utcnow())
            logger.info("Invoice %s accepted", inv.number)
        else:
            inv = transition(inv, "REJECTED", rejection_reason=reason)
            logger.warning("Invoice %s rejected: %s", inv.number, reason or "no reason given")
        self.store.save(inv)
        return inv

    def void(self, invoice_id: str) -> Invoice:
        inv = transition(self.get(invoice_id), "VOIDED")
        self.store.save(inv)
        logger.info("Invoice %s voided", inv.number)
        return inv
