from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional
import logging
import os

from pydantic import ValidationError

from salesflow.config import DATA_DIR
from salesflow.models.client import Client
from salesflow.models.common import ClientRef
from salesflow.storage.json_repo import JsonRepository

logger = logging.getLogger(__name__)

CLIENTS_JSON = os.path.join(str(DATA_DIR), "clients.json")

# clés rencontrées dans les charges utiles de l'API pour désigner le client
_CLIENT_KEYS = ("client_ref", "client_id", "clientId", "codter", "document_number")


class ClientService:
    """Clients + résolution de l'identifiant canonique (ClientRef).

    La résolution n'a lieu qu'ici, à la frontière d'ingestion ; la logique
    métier ne compare ensuite que des ClientRef.
    """

    def __init__(self, path: str = CLIENTS_JSON):
        self.repo = JsonRepository(path, entity_name="client", key="id")

    def list_clients(self) -> List[Client]:
        out: List[Client] = []
        for d in self.repo.list_all():
            try:
                out.append(Client(**d))
            except ValidationError as e:
                logger.warning("Skipping invalid client %s: %s", d.get("id"), e)
        return out

    def add_client(self, client: Client) -> Client:
        self.repo.add(client.model_dump(mode="json"))
        return client

    def update_client(self, client: Client) -> Client:
        self.repo.update(client.model_dump(mode="json"))
        return client

    def get_by_id(self, client_id: str) -> Optional[Client]:
        d = self.repo.get_by_id(client_id)
        return Client(**d) if d else None

    def find_by_identifier(self, raw: Any) -> Optional[Client]:
        value = str(raw or "").strip()
        if not value:
            return None
        for c in self.list_clients():
            if value in c.identifiers():
                return c
        return None

    def resolve_client_ref(self, raw: Any) -> ClientRef:
        if isinstance(raw, ClientRef):
            return raw
        if isinstance(raw, Mapping) and raw.get("code"):
            return ClientRef(code=str(raw["code"]))
        client = self.find_by_identifier(raw)
        if client is not None:
            return client.ref
        value = str(raw or "").strip()
        if not value:
            raise ValueError("document has no client reference")
        logger.warning("Unknown client identifier %r, kept as-is", value)
        return ClientRef(code=value)

    def normalize_payload(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Remplace les identifiants client hétérogènes par un client_ref canonique."""
        out = dict(payload)
        raw = None
        for k in _CLIENT_KEYS:
            if out.get(k) not in (None, ""):
                raw = out[k]
                break
        for k in _CLIENT_KEYS:
            out.pop(k, None)
        out["client_ref"] = self.resolve_client_ref(raw)
        return out
