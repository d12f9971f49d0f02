from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from salesflow.config import DATA_DIR, Settings, load_settings, save_settings
from salesflow.models.quote import Quote

logger = logging.getLogger(__name__)


class NumberingService:
    """Numérotation séquentielle par type de document (settings.json -> numbering).

    Sans data_dir, les séquences sont lues et écrites dans DATA_DIR
    (SALESFLOW_DATA_DIR ou <racine>/data) ; persist=False garde tout en mémoire.
    """

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        settings: Optional[Settings] = None,
        *,
        persist: bool = True,
    ) -> None:
        self.data_dir = Path(data_dir) if data_dir else DATA_DIR
        self.persist = persist
        self.settings = settings or load_settings(self.data_dir)

    def _prefix(self, kind: str) -> str:
        return getattr(self.settings.numbering, f"{kind}_prefix", f"{kind.upper()}-")

    def next_number(self, kind: str) -> str:
        numbering = self.settings.numbering
        seq = numbering.sequences.get(kind, 1)
        number = f"{self._prefix(kind)}{seq:04d}"
        numbering.sequences[kind] = seq + 1
        if self.persist:
            save_settings(self.settings, self.data_dir)
        return number

    def order_number_for(self, quote: Quote) -> str:
        if self.settings.numbering.order_from_quote_number and quote.number:
            return f"{self._prefix('order')}{quote.number}"
        return self.next_number("order")
