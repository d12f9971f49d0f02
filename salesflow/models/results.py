from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Any, Dict, Generic, List, Literal, Optional, Tuple, TypeVar
from datetime import date as Date
from .common import IntegrityWarning, QTY_EPSILON
from .delivery import Delivery
from .order import Order

T = TypeVar("T")

LineKey = Tuple[str, Optional[str]]
GroupStatus = Literal["complete", "current", "incomplete"]


class ReconciledLine(BaseModel):
    product_ref: str
    source_ref: Optional[str] = None
    quantity: float = 0.0   # quantité de l'origine
    consumed: float = 0.0
    remaining: float = 0.0
    over_consumed: bool = False

    @property
    def key(self) -> LineKey:
        return (self.product_ref, self.source_ref)

    @property
    def exhausted(self) -> bool:
        return self.remaining <= QTY_EPSILON


class Reconciliation(BaseModel):
    lines: List[ReconciledLine] = Field(default_factory=list)
    warnings: List[IntegrityWarning] = Field(default_factory=list)
    unloaded_ids: List[str] = Field(default_factory=list)

    def get(self, key: LineKey) -> Optional[ReconciledLine]:
        for ln in self.lines:
            if ln.key == key:
                return ln
        return None

    def remaining(self, key: LineKey) -> float:
        ln = self.get(key)
        return ln.remaining if ln else 0.0

    def remaining_by_product(self) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for ln in self.lines:
            out[ln.product_ref] = out.get(ln.product_ref, 0.0) + ln.remaining
        return out

    @property
    def total_remaining(self) -> float:
        return sum(ln.remaining for ln in self.lines)

    @property
    def all_exhausted(self) -> bool:
        return bool(self.lines) and all(ln.exhausted for ln in self.lines)

    @property
    def any_exhausted(self) -> bool:
        return any(ln.exhausted for ln in self.lines)

    @property
    def trustworthy(self) -> bool:
        """Faux si des dépendants n'avaient pas leurs lignes chargées."""
        return not self.unloaded_ids


class DeliveryGroup(BaseModel):
    key: str
    order: Optional[Order] = None
    deliveries: List[Delivery] = Field(default_factory=list)
    status: GroupStatus = "incomplete"
    latest_date: Optional[Date] = None
    warnings: List[IntegrityWarning] = Field(default_factory=list)

    @property
    def is_orphan(self) -> bool:
        return self.order is None


class ReturnRequest(BaseModel):
    product_ref: str
    quantity: float
    reason: Optional[str] = None
    source_delivery_id: Optional[str] = None


class OperationResult(BaseModel, Generic[T]):
    """Résultat d'une opération acceptée + avertissements non bloquants."""
    value: T
    warnings: List[IntegrityWarning] = Field(default_factory=list)


class BatchFailure(BaseModel):
    item_id: str
    error: str


class BatchResult(BaseModel):
    succeeded: List[Any] = Field(default_factory=list)
    failed: List[BatchFailure] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


class DeliveryRequest(BaseModel):
    product_ref: str
    quantity: float
