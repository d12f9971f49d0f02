from __future__ import annotations
from pydantic import Field
from typing import List, Literal, Optional
from .document import SalesDocument
from .line import CreditNoteLine

CreditNoteStatus = Literal["ISSUED", "VOIDED"]
CreditNoteKind = Literal["PARTIAL_RETURN", "TOTAL_RETURN"]


class CreditNote(SalesDocument):
    status: CreditNoteStatus = "ISSUED"
    lines: Optional[List[CreditNoteLine]] = Field(default_factory=list)

    invoice_id: str
    reason: str = ""
    kind: CreditNoteKind = "PARTIAL_RETURN"
