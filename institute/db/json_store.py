import json
from typing import Any, Dict, List

from institute.db.storage import KeyValueStorage
from institute.utils.logging import get_logger

logger = get_logger()


class JsonCollectionStore:
    """Named JSON arrays kept in key/value storage; the API server's store when Supabase is absent."""

    def __init__(self, storage: KeyValueStorage, namespace: str = "server"):
        self.storage = storage
        self.namespace = namespace

    def _key(self, name: str) -> str:
        return f"{self.namespace}.{name}"

    def read_all(self, name: str) -> List[Dict[str, Any]]:
        raw = self.storage.get_item(self._key(name))
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding corrupt collection {name}")
            return []
        return items if isinstance(items, list) else []

    def write_all(self, name: str, items: List[Dict[str, Any]]) -> None:
        self.storage.set_item(self._key(name), json.dumps(items), origin=self.namespace)

    def get_value(self, name: str) -> Any:
        raw = self.storage.get_item(self._key(name))
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def set_value(self, name: str, value: Any) -> None:
        self.storage.set_item(self._key(name), json.dumps(value), origin=self.namespace)
