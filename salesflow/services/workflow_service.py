from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol, Sequence, Tuple, Union

from salesflow.config import Settings, load_settings
from salesflow.errors import InvalidTransition
from salesflow.models.credit_note import CreditNote
from salesflow.models.delivery import Delivery, LogisticData
from salesflow.models.invoice import Invoice
from salesflow.models.order import Order
from salesflow.models.quote import Quote
from salesflow.models.results import OperationResult
from salesflow.services.catalog_service import CatalogService
from salesflow.services.credit_note_service import CreditNoteService
from salesflow.services.delivery_service import DeliveryService
from salesflow.services.delivery_service import RequestLike as DeliveryLine
from salesflow.services.credit_note_service import RequestLike as ReturnLine
from salesflow.services.invoice_service import InvoiceService
from salesflow.services.numbering_service import NumberingService
from salesflow.services.order_service import OrderService
from salesflow.services.quote_service import QuoteService
from salesflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)


class StampingOutcome(Protocol):
    accepted: bool
    reason: Optional[str]


class StampingGateway(Protocol):
    """Soumission externe (autorité fiscale) ; hors périmètre du moteur."""

    def submit(self, invoice: Invoice) -> StampingOutcome: ...


class WorkflowService:
    """Enchaînement devis -> commande -> livraison -> facture -> avoir.

    Les séquences de numérotation sont écrites dans data_dir (DATA_DIR par
    défaut) ; persist_numbering=False pour ne rien écrire.
    """

    def __init__(
        self,
        store: DocumentStore,
        data_dir: Optional[Union[str, Path]] = None,
        settings: Optional[Settings] = None,
        catalog: Optional[CatalogService] = None,
        *,
        persist_numbering: bool = True,
    ):
        self.store = store
        self.settings = settings or load_settings(data_dir)
        self.numbering = NumberingService(data_dir, self.settings, persist=persist_numbering)
        self.quotes = QuoteService(store, self.numbering)
        self.orders = OrderService(store, self.numbering)
        self.deliveries = DeliveryService(store, self.numbering, self.orders, catalog)
        self.invoices = InvoiceService(store, self.numbering)
        self.credit_notes = CreditNoteService(store, self.numbering, self.settings)

    # Etape 1 : approbation du devis
    def approve_quote(self, quote_id: str, approved_refs: Iterable[str]) -> Tuple[Quote, Order]:
        return self.quotes.approve_quote(quote_id, approved_refs).value

    # Etape 2 : livraison
    def create_delivery(
        self,
        order_id: str,
        lines: Sequence[DeliveryLine],
        logistics: Optional[LogisticData] = None,
        *,
        clamp: bool = False,
    ) -> OperationResult[Delivery]:
        return self.deliveries.create_delivery(order_id, lines, logistics, clamp=clamp)

    def mark_delivery_delivered(self, delivery_id: str) -> Delivery:
        """Un second clic sur une livraison déjà livrée est ignoré."""
        try:
            return self.deliveries.mark_delivered(delivery_id)
        except InvalidTransition as e:
            if e.current != "DELIVERED":
                raise
            logger.info("Delivery %s already delivered, ignored", delivery_id)
            return self.deliveries.get(delivery_id)

    # Etape 3 : facturation
    def create_invoice_from_deliveries(self, delivery_ids: Sequence[str], surcharge: float = 0.0) -> OperationResult[Invoice]:
        return self.invoices.create_from_deliveries(delivery_ids, surcharge=surcharge)

    def stamp_invoice(self, invoice_id: str, gateway: StampingGateway) -> Invoice:
        inv = self.invoices.get(invoice_id)
        if inv.status == "DRAFT":
            inv = self.invoices.send(invoice_id)
        outcome = gateway.submit(inv)
        return self.invoices.record_stamping(invoice_id, outcome.accepted, outcome.reason)

    # Etape 4 : retours
    def create_credit_note(
        self,
        invoice_id: str,
        lines: Sequence[ReturnLine],
        reason: Optional[str] = None,
    ) -> OperationResult[CreditNote]:
        return self.credit_notes.create_credit_note(invoice_id, lines, reason)
