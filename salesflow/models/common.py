from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Literal, Optional
from datetime import date, datetime
import uuid

QTY_EPSILON = 1e-6
MONEY_TOLERANCE = 0.01

WarningCode = Literal[
    "OVER_CONSUMED",
    "UNLOADED_LINES",
    "UNKNOWN_LINE",
    "ORPHAN_REFERENCE",
    "QUANTITY_CLAMPED",
    "TOTAL_MISMATCH",
]


def gen_id() -> str:
    return str(uuid.uuid4())


def today() -> date:
    return datetime.now().date()


class ClientRef(BaseModel):
    """Identifiant client canonique, résolu une seule fois à l'ingestion."""
    model_config = ConfigDict(frozen=True)

    code: str

    def __str__(self) -> str:
        return self.code


class IntegrityWarning(BaseModel):
    """Avertissement non bloquant renvoyé avec un résultat (jamais levé)."""
    code: WarningCode
    message: str
    document_id: Optional[str] = None
    product_ref: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
