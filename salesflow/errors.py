"""Exceptions levées par les moteurs et services du cycle de vente.

Les erreurs de validation et de transition sont levées de façon synchrone,
avant toute mutation persistée. Les avertissements d'intégrité ne sont
jamais levés : voir ``salesflow.models.common.IntegrityWarning``.
"""
from __future__ import annotations
from typing import List, Literal, Optional

from pydantic import BaseModel

BoundKind = Literal["pending", "returnable", "stock", "selection"]


class LineViolation(BaseModel):
    product_ref: Optional[str] = None
    requested: Optional[float] = None
    bound: Optional[float] = None
    bound_kind: BoundKind = "pending"
    message: str


class LifecycleError(Exception):
    """Base de toutes les erreurs métier."""


class ValidationError(LifecycleError):
    """Quantité hors borne, sélection vide, motif manquant..."""

    def __init__(self, message: str, violations: Optional[List[LineViolation]] = None):
        self.violations: List[LineViolation] = list(violations or [])
        if self.violations:
            message = f"{message}: " + "; ".join(v.message for v in self.violations)
        super().__init__(message)

    @property
    def product_refs(self) -> List[str]:
        return [v.product_ref for v in self.violations if v.product_ref]


class InvalidTransition(LifecycleError):
    def __init__(self, kind: str, document_id: Optional[str], current: str, requested: str):
        self.kind = kind
        self.document_id = document_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"{kind} {document_id or '?'}: cannot go from {current} to {requested}"
        )


class DocumentNotFound(LifecycleError):
    def __init__(self, kind: str, document_id: str):
        self.kind = kind
        self.document_id = document_id
        super().__init__(f"{kind} with id={document_id} not found")
