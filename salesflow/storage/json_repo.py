from __future__ import annotations

import json
import logging
import shutil
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
from uuid import uuid4

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class JsonRepository:
    """
    Collection JSON (liste d'objets) indexée par ``key``.
    - Copie horodatée du fichier avant chaque écriture, ``backup_keep`` gardées
    - Écriture ignorée si le contenu est identique
    - Pas de suppression
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        entity_name: str = "entity",
        key: str = "id",
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> None:
        self.filepath = Path(filepath)
        self.entity_name = entity_name
        self.key = key
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))
        self._lock = threading.Lock()
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        if not self.filepath.exists():
            self.filepath.write_text("[]", encoding="utf-8")

    # ----- fichier ----- #

    def _load(self) -> List[Record]:
        try:
            data = json.loads(self.filepath.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except json.JSONDecodeError:
            corrupt = self.filepath.with_suffix(".corrupt.json")
            shutil.copy2(self.filepath, corrupt)
            logger.warning("Corrupt %s file %s, copied to %s", self.entity_name, self.filepath, corrupt)
            return []
        return data if isinstance(data, list) else []

    def _backup(self) -> None:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        shutil.copy2(self.filepath, self.filepath.with_suffix(f".{stamp}.bak.json"))
        backups = sorted(self.filepath.parent.glob(f"{self.filepath.stem}.*.bak.json"))
        for old in backups[: max(0, len(backups) - self.backup_keep)]:
            old.unlink(missing_ok=True)

    def _save(self, records: List[Record]) -> None:
        text = json.dumps(records, ensure_ascii=False, indent=2, default=str)
        with self._lock:
            if self.filepath.exists():
                if self.filepath.read_text(encoding="utf-8") == text:
                    return
                if self.backup_enabled and self.backup_keep:
                    self._backup()
            self.filepath.write_text(text, encoding="utf-8")

    def _index_of(self, records: List[Record], obj_id: Any) -> Optional[int]:
        for i, r in enumerate(records):
            if str(r.get(self.key)) == str(obj_id):
                return i
        return None

    # ----- accès ----- #

    def list_all(self) -> List[Record]:
        return self._load()

    def get_by_id(self, obj_id: Any) -> Optional[Record]:
        records = self._load()
        i = self._index_of(records, obj_id)
        return records[i] if i is not None else None

    def add(self, item: Mapping[str, Any]) -> Record:
        record = dict(item)
        record.setdefault(self.key, None)
        if not record[self.key]:
            record[self.key] = uuid4().hex
        records = self._load()
        if self._index_of(records, record[self.key]) is not None:
            raise ValueError(f"{self.entity_name} with {self.key}={record[self.key]} already exists")
        records.append(record)
        self._save(records)
        return record

    def update(self, item: Mapping[str, Any]) -> Record:
        """Fusionne ``item`` dans l'enregistrement existant ; KeyError s'il n'existe pas."""
        obj_id = item.get(self.key)
        if not obj_id:
            raise ValueError(f"Cannot update {self.entity_name} without '{self.key}'")
        records = self._load()
        i = self._index_of(records, obj_id)
        if i is None:
            raise KeyError(f"{self.entity_name} with {self.key}={obj_id} not found")
        records[i] = {**records[i], **item}
        self._save(records)
        return records[i]

    def upsert(self, item: Mapping[str, Any]) -> Record:
        try:
            return self.update(item)
        except KeyError:
            return self.add(item)
