from __future__ import annotations
from pydantic import Field
from typing import List, Literal, Optional
from datetime import datetime
from .document import SalesDocument
from .line import InvoiceLine

InvoiceStatus = Literal["DRAFT", "SENT", "ACCEPTED", "REJECTED", "VOIDED"]
ReturnStatus = Literal["PARTIAL_RETURN", "FULL_RETURN"]


class Invoice(SalesDocument):
    status: InvoiceStatus = "DRAFT"
    lines: Optional[List[InvoiceLine]] = Field(default_factory=list)

    source_delivery_ids: List[str] = Field(default_factory=list)
    replaces_invoice_id: Optional[str] = None

    sent_at: Optional[datetime] = None
    stamped_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
