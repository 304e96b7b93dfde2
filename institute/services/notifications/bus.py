from collections import defaultdict
from typing import Callable, Dict, List, Optional, Any

from institute.db.storage import KeyValueStorage
from institute.schemas.entity_schemas import EntityType
from institute.schemas.reconciliation_schemas import ChangeEvent, ChangeKind
from institute.services.reconciliation.registry import EntityRegistry
from institute.utils.logging import get_logger

logger = get_logger()

ChangeHandler = Callable[[ChangeEvent], None]


class ChangeBus:
    """
    Per-origin publish/subscribe channel for collection changes.

    `publish` delivers synchronously to subscribers of the same origin. Writes
    made to the shared storage by any other origin are delivered to the same
    subscribers as `storage` events, keyed by the entity whose cache key changed.
    """

    def __init__(self, storage: KeyValueStorage, origin: str):
        self.origin = origin
        self._subscribers: Dict[EntityType, List[ChangeHandler]] = defaultdict(list)
        self._remove_listener: Optional[Callable[[], None]] = storage.add_listener(
            self._on_storage_change
        )

    def publish(
        self,
        entity_type: EntityType,
        kind: ChangeKind,
        record: Optional[Dict[str, Any]] = None,
        record_id: Optional[str] = None,
    ) -> ChangeEvent:
        event = ChangeEvent(
            entity_type=entity_type,
            kind=kind,
            record=record,
            record_id=record_id or (str(record["id"]) if record and "id" in record else None),
            origin=self.origin,
        )
        self._deliver(event)
        return event

    def subscribe(self, entity_type: EntityType, handler: ChangeHandler) -> Callable[[], None]:
        """Subscribe to changes of one entity type; returns the unsubscribe function."""
        entity_type = EntityType(entity_type)
        self._subscribers[entity_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(entity_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, entity_type: EntityType) -> int:
        return len(self._subscribers.get(EntityType(entity_type), []))

    def close(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        self._subscribers.clear()

    def _on_storage_change(self, key: str, origin: Optional[str]) -> None:
        if origin == self.origin:
            return
        definition = EntityRegistry.by_cache_key(key)
        if definition is None:
            return
        self._deliver(
            ChangeEvent(
                entity_type=definition.entity_type,
                kind=ChangeKind.STORAGE,
                origin=origin,
            )
        )

    def _deliver(self, event: ChangeEvent) -> None:
        for handler in list(self._subscribers.get(event.entity_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Change handler failed for {event.entity_type.value}/{event.kind.value}: {e}"
                )
