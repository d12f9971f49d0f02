from __future__ import annotations
from typing import Literal, Optional
from datetime import date as Date
from .document import SalesDocument

OrderStatus = Literal[
    "DRAFT",
    "SENT",
    "CONFIRMED",
    "IN_PROGRESS",
    "PARTIALLY_DELIVERED",
    "DELIVERED",
    "CANCELLED",
]


class Order(SalesDocument):
    status: OrderStatus = "DRAFT"
    quote_id: Optional[str] = None
    expected_delivery_date: Optional[Date] = None
