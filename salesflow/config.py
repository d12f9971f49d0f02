from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

# --- Chemins de base ---
ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = Path(os.environ.get("SALESFLOW_DATA_DIR") or ROOT_DIR / "data")
SETTINGS_FILENAME = "settings.json"

DEFAULT_RETURN_REASONS = [
    "Defective product",
    "Damaged goods",
    "Dispatch error",
    "Quantity difference",
    "Goods refused by client",
    "Other",
]


class NumberingSettings(BaseModel):
    quote_prefix: str = "COT-"
    order_prefix: str = "PED-"
    delivery_prefix: str = "REM-"
    invoice_prefix: str = "FAC-"
    credit_note_prefix: str = "NC-"
    # ordre de commande dérivé du numéro de devis (PED-<numéro devis>)
    order_from_quote_number: bool = True
    sequences: Dict[str, int] = Field(default_factory=dict)


class Settings(BaseModel):
    numbering: NumberingSettings = Field(default_factory=NumberingSettings)
    money_tolerance: float = 0.01
    returnable_invoice_statuses: List[str] = Field(default_factory=lambda: ["ACCEPTED"])
    return_reasons: List[str] = Field(default_factory=lambda: list(DEFAULT_RETURN_REASONS))
    log_level: str = "INFO"

    class Config:
        extra = "ignore"


def settings_path(data_dir: Optional[Union[str, Path]] = None) -> Path:
    return Path(data_dir or DATA_DIR) / SETTINGS_FILENAME


def load_settings(data_dir: Optional[Union[str, Path]] = None) -> Settings:
    p = settings_path(data_dir)
    if not p.exists():
        return Settings()
    try:
        return Settings.model_validate(json.loads(p.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Invalid settings file %s (%s), using defaults", p, e)
        return Settings()


def save_settings(settings: Settings, data_dir: Optional[Union[str, Path]] = None) -> None:
    p = settings_path(data_dir)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(settings.model_dump_json(indent=2), encoding="utf-8")


def configure_logging(level: Optional[str] = None, data_dir: Optional[Union[str, Path]] = None) -> None:
    """Niveau : argument, puis SALESFLOW_LOG_LEVEL, puis log_level de settings.json."""
    name = level or os.environ.get("SALESFLOW_LOG_LEVEL") or load_settings(data_dir).log_level
    lvl = getattr(logging, name.upper(), logging.INFO)
    logging.basicConfig(level=lvl, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("salesflow").setLevel(lvl)
