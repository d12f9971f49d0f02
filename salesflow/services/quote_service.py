from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from salesflow.engine.state_machine import approve_quote, transition
from salesflow.engine.totals import apply_totals
from salesflow.errors import LifecycleError
from salesflow.models.order import Order
from salesflow.models.quote import Quote
from salesflow.models.results import BatchFailure, BatchResult, OperationResult
from salesflow.services.numbering_service import NumberingService
from salesflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)


class QuoteService:
    def __init__(self, store: DocumentStore, numbering: NumberingService) -> None:
        self.store = store
        self.numbering = numbering

    # ----- CRUD ----- #

    def create_quote(self, quote: Quote) -> OperationResult[Quote]:
        if not quote.number:
            quote = quote.model_copy(update={"number": self.numbering.next_number("quote")})
        quote, warnings = apply_totals(quote, self.numbering.settings.money_tolerance)
        self.store.save(quote)
        logger.info("Quote %s created (%d lines, total %.2f)", quote.number, len(quote.lines or []), quote.total)
        return OperationResult(value=quote, warnings=warnings)

    def get(self, quote_id: str) -> Quote:
        return self.store.get_quote(quote_id)

    # ----- Transitions ----- #

    def send_quote(self, quote_id: str) -> Quote:
        q = transition(self.get(quote_id), "SENT")
        self.store.save(q)
        return q

    def reject_quote(self, quote_id: str, reason: Optional[str] = None) -> Quote:
        q = transition(self.get(quote_id), "REJECTED", rejection_reason=reason, decided_at=datetime.utcnow())
        self.store.save(q)
        logger.info("Quote %s rejected", q.number)
        return q

    def expire_quotes(self, on: date) -> List[Quote]:
        """Passe en EXPIRED les devis envoyés dont la validité est dépassée."""
        out: List[Quote] = []
        for q in self.store.list_quotes():
            if q.status == "SENT" and q.is_expired(on):
                expired = transition(q, "EXPIRED")
                self.store.save(expired)
                out.append(expired)
        if out:
            logger.info("%d quote(s) expired on %s", len(out), on.isoformat())
        return out

    # ----- Approbation ----- #

    def approve_quote(self, quote_id: str, approved_refs: Iterable[str]) -> OperationResult[Tuple[Quote, Order]]:
        """SENT -> APPROVED + création de la commande (lignes approuvées seulement)."""
        quote = self.get(quote_id)
        if quote.lines is None:
            quote = self.store.load_lines(quote)
        approved, order = approve_quote(quote, approved_refs, tolerance=self.numbering.settings.money_tolerance)
        order = order.model_copy(update={"number": self.numbering.order_number_for(quote)})
        self.store.save(order)
        self.store.save(approved)
        logger.info("Quote %s approved, order %s created with %d line(s)",
                    approved.number, order.number, len(order.lines or []))
        return OperationResult(value=(approved, order))

    def approve_quotes(self, selections: Sequence[Tuple[str, Iterable[str]]]) -> BatchResult:
        """Approbation en lot : un échec n'interrompt pas le reste."""
        result = BatchResult()
        for quote_id, refs in selections:
            try:
                result.succeeded.append(self.approve_quote(quote_id, refs).value)
            except LifecycleError as e:
                logger.warning("Quote %s not approved: %s", quote_id, e)
                result.failed.append(BatchFailure(item_id=quote_id, error=str(e)))
        logger.info("Batch approval: %d approved, %d failed", result.success_count, result.failure_count)
        return result
