import json
from typing import Any, Dict, List, Optional

from institute.db.storage import KeyValueStorage
from institute.schemas.entity_schemas import EntityType
from institute.schemas.reconciliation_schemas import ChangeKind
from institute.services.notifications.bus import ChangeBus
from institute.services.reconciliation.registry import EntityDefinition, EntityRegistry
from institute.utils.datetime_utils import epoch_ms, utc_now_iso
from institute.utils.errors import StorageUnavailableError
from institute.utils.logging import get_logger

logger = get_logger()


class LocalCache:
    """
    Durable per-entity collections kept in key/value storage.

    Each entity type is one JSON array under its cache key, newest first.
    Reads never raise: missing, corrupt or unavailable storage reads as an
    empty collection, and failed writes are dropped. Every successful
    mutation is published on the change bus.
    """

    def __init__(self, storage: KeyValueStorage, bus: ChangeBus, origin: Optional[str] = None):
        self.storage = storage
        self.bus = bus
        self.origin = origin or bus.origin

    # Raw keys

    def get_raw(self, key: str) -> Optional[str]:
        try:
            return self.storage.get_item(key)
        except StorageUnavailableError as e:
            logger.debug(f"Cache read skipped for {key}: {e.message}")
            return None

    def set_raw(self, key: str, value: str) -> bool:
        try:
            self.storage.set_item(key, value, origin=self.origin)
            return True
        except StorageUnavailableError as e:
            logger.debug(f"Cache write skipped for {key}: {e.message}")
            return False

    # Collections

    def get(self, entity_type: EntityType) -> List[Dict[str, Any]]:
        definition = EntityRegistry.get(entity_type)
        return self._read(definition)

    def find(self, entity_type: EntityType, record_id: str) -> Optional[Dict[str, Any]]:
        definition = EntityRegistry.get(entity_type)
        records = self._read(definition)
        index = self._index_of(definition, records, record_id)
        return None if index is None else records[index]

    def add(self, entity_type: EntityType, record: Dict[str, Any]) -> Dict[str, Any]:
        """Add a record, or replace the stored record with the same identity."""
        definition = EntityRegistry.get(entity_type)
        records = self._read(definition)
        record = dict(record)

        if not record.get("id"):
            record["id"] = self.next_local_id(definition, records)
        if not record.get("createdAt"):
            record["createdAt"] = utc_now_iso()

        index = self._index_of(definition, records, record["id"])
        if index is None:
            records.insert(0, record)
            kind = ChangeKind.ADD
        else:
            records[index] = record
            kind = ChangeKind.UPSERT

        if self._write(definition, records):
            self.bus.publish(definition.entity_type, kind, record)
        return record

    def upsert(
        self, entity_type: EntityType, record_id: str, patch: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Shallow-merge `patch` into an existing record; None when the record is not cached."""
        definition = EntityRegistry.get(entity_type)
        records = self._read(definition)
        index = self._index_of(definition, records, record_id)
        if index is None:
            return None

        merged = {**records[index], **patch, "id": records[index]["id"]}
        records[index] = merged
        if self._write(definition, records):
            self.bus.publish(definition.entity_type, ChangeKind.UPSERT, merged)
        return merged

    def replace_all(self, entity_type: EntityType, records: List[Dict[str, Any]]) -> None:
        definition = EntityRegistry.get(entity_type)
        if self._write(definition, list(records)):
            self.bus.publish(definition.entity_type, ChangeKind.SYNC)

    def remove(self, entity_type: EntityType, record_id: str) -> bool:
        definition = EntityRegistry.get(entity_type)
        records = self._read(definition)
        canonical = definition.model.canonical_id(record_id)
        remaining = [
            r for r in records if definition.model.canonical_id(r.get("id")) != canonical
        ]
        if len(remaining) == len(records):
            return False
        if not self._write(definition, remaining):
            return False
        self.bus.publish(definition.entity_type, ChangeKind.REMOVE, record_id=str(record_id))
        return True

    def supersede(
        self, entity_type: EntityType, local_id: str, record: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Swap the local-only copy `local_id` for `record`, dropping other copies of its identity."""
        definition = EntityRegistry.get(entity_type)
        records = self._read(definition)
        model = definition.model
        new_identity = model.canonical_id(record["id"])
        local_identity = model.canonical_id(local_id)

        result: List[Dict[str, Any]] = []
        placed = False
        for existing in records:
            identity = model.canonical_id(existing.get("id"))
            if identity == local_identity and not placed:
                result.append(record)
                placed = True
            elif identity not in (local_identity, new_identity):
                result.append(existing)
        if not placed:
            result.insert(0, record)

        if self._write(definition, result):
            self.bus.publish(definition.entity_type, ChangeKind.UPSERT, record)
        return record

    def next_local_id(
        self, definition: EntityDefinition, records: Optional[List[Dict[str, Any]]] = None
    ) -> str:
        """Synthesize `<PREFIX>-<epoch-ms>`, bumping the number past any stored id."""
        if records is None:
            records = self._read(definition)
        taken = {str(r.get("id")) for r in records}
        stamp = epoch_ms()
        candidate = f"{definition.id_prefix}-{stamp}"
        while candidate in taken:
            stamp += 1
            candidate = f"{definition.id_prefix}-{stamp}"
        return candidate

    def _read(self, definition: EntityDefinition) -> List[Dict[str, Any]]:
        raw = self.get_raw(definition.cache_key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring corrupt cache entry {definition.cache_key}")
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict) and item.get("id") is not None]

    def _write(self, definition: EntityDefinition, records: List[Dict[str, Any]]) -> bool:
        return self.set_raw(definition.cache_key, json.dumps(records))

    @staticmethod
    def _index_of(
        definition: EntityDefinition, records: List[Dict[str, Any]], record_id: Any
    ) -> Optional[int]:
        canonical = definition.model.canonical_id(record_id)
        for index, record in enumerate(records):
            if definition.model.canonical_id(record.get("id")) == canonical:
                return index
        return None
