from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Optional


class LineItem(BaseModel):
    product_ref: str
    description: Optional[str] = None
    quantity: float = Field(default=0.0, ge=0)
    unit_price: float = Field(default=0.0, ge=0)
    discount_percent: float = Field(default=0.0, ge=0, le=100)
    tax_percent: float = Field(default=0.0, ge=0)

    # valeurs calculées côté serveur : font foi si présentes
    computed_subtotal: Optional[float] = None  # net de remise
    computed_tax: Optional[float] = None
    computed_total: Optional[float] = None

    class Config:
        extra = "ignore"


class InvoiceLine(LineItem):
    source_delivery_id: Optional[str] = None


class CreditNoteLine(LineItem):
    source_delivery_id: Optional[str] = None
    reason: str

    @field_validator("reason")
    @classmethod
    def _reason_not_blank(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("reason is required for every returned line")
        return v


class LineTotals(BaseModel):
    gross: float = 0.0
    discount: float = 0.0
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0


class DocumentTotals(BaseModel):
    subtotal: float = 0.0
    discount_total: float = 0.0
    tax_total: float = 0.0
    total: float = 0.0
