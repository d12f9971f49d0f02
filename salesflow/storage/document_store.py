"""Accès aux documents du cycle de vente.

``DocumentStore`` est le port injecté dans les services ; les moteurs ne le
voient jamais. Deux implémentations : en mémoire (tests, appelants qui
tiennent déjà un instantané) et JSON (en-têtes et lignes dans des fichiers
séparés, lignes chargées à la demande).
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Type, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from salesflow.errors import DocumentNotFound
from salesflow.models.common import ClientRef
from salesflow.models.credit_note import CreditNote
from salesflow.models.delivery import Delivery
from salesflow.models.document import SalesDocument
from salesflow.models.invoice import Invoice
from salesflow.models.order import Order
from salesflow.models.quote import Quote
from salesflow.storage.json_repo import JsonRepository

logger = logging.getLogger(__name__)

D = TypeVar("D", bound=SalesDocument)

KINDS: Dict[str, Type[SalesDocument]] = {
    "quote": Quote,
    "order": Order,
    "delivery": Delivery,
    "invoice": Invoice,
    "credit_note": CreditNote,
}


def kind_of(doc: SalesDocument) -> str:
    for kind, cls in KINDS.items():
        if isinstance(doc, cls):
            return kind
    raise TypeError(f"Unknown document type {type(doc).__name__}")


class DocumentStore(ABC):
    """Port de persistance des documents, avec getters typés."""

    @abstractmethod
    def get(self, kind: str, doc_id: str) -> Optional[SalesDocument]: ...

    @abstractmethod
    def list(self, kind: str) -> List[SalesDocument]: ...

    @abstractmethod
    def save(self, doc: D) -> D: ...

    @abstractmethod
    def load_lines(self, doc: D) -> D:
        """Renvoie le document avec ses lignes chargées (détail)."""

    # ----- getters typés ----- #

    def require(self, kind: str, doc_id: str) -> SalesDocument:
        doc = self.get(kind, doc_id)
        if doc is None:
            raise DocumentNotFound(kind, doc_id)
        return doc

    def get_quote(self, quote_id: str) -> Quote:
        return self.require("quote", quote_id)  # type: ignore[return-value]

    def get_order(self, order_id: str) -> Order:
        return self.require("order", order_id)  # type: ignore[return-value]

    def get_delivery(self, delivery_id: str) -> Delivery:
        return self.require("delivery", delivery_id)  # type: ignore[return-value]

    def get_invoice(self, invoice_id: str) -> Invoice:
        return self.require("invoice", invoice_id)  # type: ignore[return-value]

    def get_credit_note(self, note_id: str) -> CreditNote:
        return self.require("credit_note", note_id)  # type: ignore[return-value]

    def find_order(self, order_id: Optional[str]) -> Optional[Order]:
        return self.get("order", order_id) if order_id else None  # type: ignore[return-value]

    def list_quotes(self) -> List[Quote]:
        return self.list("quote")  # type: ignore[return-value]

    def list_orders(self) -> List[Order]:
        return self.list("order")  # type: ignore[return-value]

    def list_deliveries(self, order_id: Optional[str] = None, client_ref: Optional[ClientRef] = None) -> List[Delivery]:
        out: List[Delivery] = self.list("delivery")  # type: ignore[assignment]
        if order_id is not None:
            out = [d for d in out if d.order_id == order_id]
        if client_ref is not None:
            out = [d for d in out if d.client_ref == client_ref]
        return out

    def list_invoices(self, client_ref: Optional[ClientRef] = None) -> List[Invoice]:
        out: List[Invoice] = self.list("invoice")  # type: ignore[assignment]
        if client_ref is not None:
            out = [i for i in out if i.client_ref == client_ref]
        return out

    def list_credit_notes(self, invoice_id: Optional[str] = None) -> List[CreditNote]:
        out: List[CreditNote] = self.list("credit_note")  # type: ignore[assignment]
        if invoice_id is not None:
            out = [n for n in out if n.invoice_id == invoice_id]
        return out

    def ensure_lines(self, docs: List[D]) -> List[D]:
        return [d if d.lines is not None else self.load_lines(d) for d in docs]


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, *docs: SalesDocument) -> None:
        self._data: Dict[str, Dict[str, SalesDocument]] = {k: {} for k in KINDS}
        for d in docs:
            self.save(d)

    def get(self, kind: str, doc_id: str) -> Optional[SalesDocument]:
        doc = self._data[kind].get(doc_id)
        return doc.model_copy(deep=True) if doc is not None else None

    def list(self, kind: str) -> List[SalesDocument]:
        return [d.model_copy(deep=True) for d in self._data[kind].values()]

    def save(self, doc: D) -> D:
        self._data[kind_of(doc)][doc.id] = doc.model_copy(deep=True)
        return doc

    def load_lines(self, doc: D) -> D:
        stored = self._data[kind_of(doc)].get(doc.id)
        if stored is None:
            raise DocumentNotFound(kind_of(doc), doc.id)
        return doc.model_copy(update={"lines": [ln.model_copy() for ln in stored.lines or []]})


class JsonDocumentStore(DocumentStore):
    """En-têtes dans ``<kind>s.json``, lignes dans ``<kind>_lines.json``."""

    def __init__(self, data_dir: Union[str, Path]) -> None:
        base = Path(data_dir)
        base.mkdir(parents=True, exist_ok=True)
        self.headers = {k: JsonRepository(base / f"{k}s.json", entity_name=k) for k in KINDS}
        self.details = {k: JsonRepository(base / f"{k}_lines.json", entity_name=f"{k} lines") for k in KINDS}

    def _hydrate(self, kind: str, record: Dict, lines: Optional[List[Dict]]) -> Optional[SalesDocument]:
        try:
            return KINDS[kind].model_validate({**record, "lines": lines})
        except PydanticValidationError as e:
            # On ignore les entrées invalides pour ne pas casser la liste
            logger.warning("Skipping invalid %s record %s: %s", kind, record.get("id"), e)
            return None

    def get(self, kind: str, doc_id: str) -> Optional[SalesDocument]:
        record = self.headers[kind].get_by_id(doc_id)
        if record is None:
            return None
        detail = self.details[kind].get_by_id(doc_id) or {}
        return self._hydrate(kind, record, detail.get("lines", []))

    def list(self, kind: str) -> List[SalesDocument]:
        # en-têtes seulement : lignes à None jusqu'au chargement du détail
        out = []
        for record in self.headers[kind].list_all():
            doc = self._hydrate(kind, record, None)
            if doc is not None:
                out.append(doc)
        return out

    def save(self, doc: D) -> D:
        kind = kind_of(doc)
        self.headers[kind].upsert(doc.model_dump(mode="json", exclude={"lines"}))
        if doc.lines is not None:
            self.details[kind].upsert({"id": doc.id, "lines": [ln.model_dump(mode="json") for ln in doc.lines]})
        return doc

    def load_lines(self, doc: D) -> D:
        detail = self.details[kind_of(doc)].get_by_id(doc.id)
        if detail is None:
            logger.warning("No line detail for %s %s", kind_of(doc), doc.id)
            return doc.model_copy(update={"lines": []})
        validated = KINDS[kind_of(doc)].model_validate({**doc.model_dump(exclude={"lines"}), "lines": detail.get("lines", [])})
        return validated  # type: ignore[return-value]
