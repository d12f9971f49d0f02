from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import date as Date, datetime
from .document import SalesDocument

DeliveryStatus = Literal["DRAFT", "IN_TRANSIT", "DELIVERED", "CANCELLED"]
ShipmentScope = Literal["FULL", "PARTIAL"]


class LogisticData(BaseModel):
    dispatch_date: Optional[Date] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class Delivery(SalesDocument):
    status: DeliveryStatus = "DRAFT"

    order_id: Optional[str] = None  # peut ne plus se résoudre (orpheline)
    invoice_id: Optional[str] = None

    logistics: LogisticData = Field(default_factory=LogisticData)
    shipment_scope: ShipmentScope = "PARTIAL"
    delivered_at: Optional[datetime] = None
