from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Union

from salesflow.config import Settings
from salesflow.engine.returns import build_credit_note, return_status, returnable_lines, total_return_requests
from salesflow.engine.state_machine import transition
from salesflow.models.credit_note import CreditNote
from salesflow.models.invoice import Invoice
from salesflow.models.results import OperationResult, Reconciliation, ReturnRequest
from salesflow.services.numbering_service import NumberingService
from salesflow.storage.document_store import DocumentStore

logger = logging.getLogger(__name__)

RequestLike = Union[ReturnRequest, Mapping[str, Any]]


class CreditNoteService:
    def __init__(self, store: DocumentStore, numbering: NumberingService, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.numbering = numbering
        self.settings = settings or numbering.settings

    def _invoice(self, invoice_id: str) -> Invoice:
        inv = self.store.get_invoice(invoice_id)
        return inv if inv.lines is not None else self.store.load_lines(inv)

    def _notes(self, invoice_id: str) -> List[CreditNote]:
        return self.store.ensure_lines(self.store.list_credit_notes(invoice_id=invoice_id))

    def returnable(self, invoice_id: str) -> Reconciliation:
        return returnable_lines(self._invoice(invoice_id), self._notes(invoice_id))

    def return_status(self, invoice_id: str) -> Optional[str]:
        return return_status(self._invoice(invoice_id), self._notes(invoice_id))

    def create_credit_note(
        self,
        invoice_id: str,
        lines: Sequence[RequestLike],
        reason: Optional[str] = None,
    ) -> OperationResult[CreditNote]:
        """Avoir contre une facture ; les quantités excédentaires sont ramenées
        au restant retournable et signalées dans les avertissements."""
        invoice = self._invoice(invoice_id)
        requests = [r if isinstance(r, ReturnRequest) else ReturnRequest.model_validate(r) for r in lines]
        note, warnings = build_credit_note(
            invoice,
            self._notes(invoice_id),
            requests,
            reason=reason,
            returnable_statuses=self.settings.returnable_invoice_statuses,
            tolerance=self.settings.money_tolerance,
        )
        note = note.model_copy(update={"number": self.numbering.next_number("credit_note")})
        self.store.save(note)
        for w in warnings:
            logger.warning("Credit note %s: %s", note.number, w.message)
        logger.info("Credit note %s issued against invoice %s (%s, total %.2f)",
                    note.number, invoice.number, note.kind, note.total)
        return OperationResult(value=note, warnings=warnings)

    def create_total_return(self, invoice_id: str, reason: Optional[str] = None) -> OperationResult[CreditNote]:
        """Retour total : chaque ligne à son restant retournable complet."""
        reason = (reason or "").strip() or self.settings.return_reasons[0]
        invoice = self._invoice(invoice_id)
        requests = total_return_requests(invoice, self._notes(invoice_id), reason)
        return self.create_credit_note(invoice_id, requests, reason=reason)

    def void(self, note_id: str) -> CreditNote:
        n = transition(self.store.get_credit_note(note_id), "VOIDED")
        self.store.save(n)
        logger.info("Credit note %s voided", n.number)
        return n
