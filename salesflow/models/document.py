from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date as Date, datetime
from .common import ClientRef, gen_id, today
from .line import LineItem


class SalesDocument(BaseModel):
    """Forme commune à tous les documents du cycle de vente."""
    id: str = Field(default_factory=gen_id)
    number: Optional[str] = None
    date: Date = Field(default_factory=today)
    client_ref: ClientRef

    # None => lignes pas encore chargées (chargement paresseux)
    lines: Optional[List[LineItem]] = Field(default_factory=list)
    status: str = "DRAFT"

    subtotal: float = 0.0
    discount_total: float = 0.0
    tax_total: float = 0.0
    total: float = 0.0
    surcharge: float = Field(default=0.0, ge=0)  # ex: frais de livraison

    created_at: datetime = Field(default_factory=datetime.utcnow)
    notes: Optional[str] = None

    @property
    def lines_loaded(self) -> bool:
        return self.lines is not None

    class Config:
        extra = "ignore"  # tolère d'anciennes clés dans les JSON
