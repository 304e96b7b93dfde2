import asyncio
from typing import Callable, List, Optional

from institute.schemas.entity_schemas import EntityRecord, EntityType
from institute.schemas.reconciliation_schemas import ChangeEvent
from institute.services.notifications.bus import ChangeBus
from institute.services.reconciliation.service import ReconciliationService
from institute.utils.logging import get_logger

logger = get_logger()


class CollectionWatcher:
    """
    Headless view of one collection.

    Holds the latest reconciled records, refreshes when the bus reports a
    change (same origin or storage event from another origin) and, once
    started, also every `interval` seconds. `tick()` runs one refresh cycle
    deterministically for tests and schedulers.
    """

    def __init__(
        self,
        service: ReconciliationService,
        entity_type: EntityType,
        bus: Optional[ChangeBus] = None,
        interval: float = 5.0,
        on_change: Optional[Callable[[List[EntityRecord]], None]] = None,
    ):
        self.service = service
        self.entity_type = EntityType(entity_type)
        self.bus = bus or service.bus
        self.interval = interval
        self.on_change = on_change
        self.records: List[EntityRecord] = []
        self.refresh_count = 0
        self._dirty = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._unsubscribe = self.bus.subscribe(self.entity_type, self._on_event)

    def _on_event(self, event: ChangeEvent) -> None:
        self._dirty.set()

    @property
    def pending_change(self) -> bool:
        return self._dirty.is_set()

    async def refresh(self) -> List[EntityRecord]:
        records = await self.service.reconcile(self.entity_type)
        self.refresh_count += 1
        changed = [r.model_dump() for r in records] != [r.model_dump() for r in self.records]
        self.records = records
        if changed and self.on_change is not None:
            try:
                self.on_change(records)
            except Exception as e:
                logger.error(f"Watcher callback failed for {self.entity_type.value}: {e}")
        return records

    async def tick(self) -> List[EntityRecord]:
        """One cycle: clear the change flag, then reconcile."""
        self._dirty.clear()
        return await self.refresh()

    async def _run(self) -> None:
        while not self._closed:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Reconcile of {self.entity_type.value} failed: {e}")
            try:
                await asyncio.wait_for(self._dirty.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def start(self) -> asyncio.Task:
        """Start the background refresh loop on the running event loop."""
        if self._closed:
            raise RuntimeError("Watcher is closed")
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
        return self._task

    async def close(self) -> None:
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
