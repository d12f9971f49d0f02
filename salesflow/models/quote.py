from __future__ import annotations
from pydantic import Field
from typing import List, Literal, Optional
from datetime import date as Date, datetime
from .document import SalesDocument

QuoteStatus = Literal["DRAFT", "SENT", "APPROVED", "REJECTED", "EXPIRED"]


class Quote(SalesDocument):
    status: QuoteStatus = "DRAFT"

    valid_until: Optional[Date] = None
    decided_at: Optional[datetime] = None

    # sous-ensemble des lignes devenu commande (sémantique d'ensemble)
    approved_line_refs: List[str] = Field(default_factory=list)
    order_id: Optional[str] = None
    rejection_reason: Optional[str] = None

    def is_expired(self, on: Date) -> bool:
        return self.valid_until is not None and on > self.valid_until
