from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from salesflow.config import DATA_DIR
from salesflow.models.product import Product
from salesflow.storage.json_repo import JsonRepository

logger = logging.getLogger(__name__)


class CatalogService:
    """
    Produits et niveaux de stock (lecture seule pour le moteur).
    - La réservation de stock en entrepôt n'est pas gérée ici
    - stock_qty à None => pas de contrôle de stock pour ce produit
    """

    def __init__(self, products_repo: Optional[JsonRepository] = None, data_dir: Optional[Union[str, Path]] = None) -> None:
        base = Path(data_dir) if data_dir else DATA_DIR
        self.products_repo = products_repo or JsonRepository(base / "products.json", entity_name="product", key="id")

    def list_products(self) -> List[Product]:
        out: List[Product] = []
        for d in self.products_repo.list_all():
            try:
                out.append(Product.model_validate(d))
            except ValidationError as e:
                logger.warning("Skipping invalid product %s: %s", d.get("id"), e)
        return out

    def get_by_ref(self, ref: str) -> Optional[Product]:
        for p in self.list_products():
            if p.ref == ref:
                return p
        return None

    def upsert_product(self, product: Product) -> Product:
        self.products_repo.upsert(product.model_dump(mode="json"))
        return product

    def available_stock(self, ref: str) -> Optional[float]:
        p = self.get_by_ref(ref)
        if p is None or not p.active:
            return None
        return p.stock_qty

    def stock_bounds(self, refs: Iterable[str]) -> Dict[str, float]:
        """Stock connu par produit ; les produits non suivis sont absents."""
        out: Dict[str, float] = {}
        for ref in refs:
            qty = self.available_stock(ref)
            if qty is not None:
                out[ref] = qty
        return out
