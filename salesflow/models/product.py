from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional
from .common import gen_id


class Product(BaseModel):
  id: str = Field(default_factory=gen_id)
  ref: str
  label: str
  unit: str = "unit"
  active: bool = True
  # None => stock non suivi, pas de contrôle
  stock_qty: Optional[float] = None
  description: Optional[str] = None
