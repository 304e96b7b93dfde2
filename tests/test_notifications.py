import asyncio

import pytest

from institute.db.storage import MemoryStorage
from institute.schemas.entity_schemas import EntityType
from institute.schemas.reconciliation_schemas import ChangeKind, CreateIntent
from institute.services.notifications.bus import ChangeBus
from institute.services.notifications.watcher import CollectionWatcher
from institute.services.reconciliation.service import ReconciliationService
from institute.utils.global_context import AppContext

from tests.fakes import build_service


class TestChangeBus:
    """Publish/subscribe within one origin and across origins."""

    def test_publish_delivers_to_entity_subscribers_only(self, storage: MemoryStorage):
        """Test handlers only see events of the entity type they subscribed to."""
        bus = ChangeBus(storage, "tab-a")
        enquiries, courses = [], []
        bus.subscribe(EntityType.ENQUIRIES, enquiries.append)
        bus.subscribe(EntityType.COURSES, courses.append)

        event = bus.publish(EntityType.ENQUIRIES, ChangeKind.ADD, {"id": "ENQ-1"})

        assert enquiries == [event]
        assert courses == []
        assert event.record_id == "ENQ-1"
        assert event.origin == "tab-a"

    def test_unsubscribe(self, storage: MemoryStorage):
        """Test an unsubscribed handler receives nothing."""
        bus = ChangeBus(storage, "tab-a")
        received = []
        unsubscribe = bus.subscribe("courses", received.append)

        unsubscribe()
        bus.publish(EntityType.COURSES, ChangeKind.SYNC)

        assert received == []
        assert bus.subscriber_count(EntityType.COURSES) == 0

    def test_failing_handler_does_not_block_others(self, storage: MemoryStorage):
        """Test one raising handler does not stop delivery."""
        bus = ChangeBus(storage, "tab-a")
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(EntityType.STUDENTS, broken)
        bus.subscribe(EntityType.STUDENTS, received.append)
        bus.publish(EntityType.STUDENTS, ChangeKind.REMOVE, record_id="STU-1")

        assert [e.kind for e in received] == [ChangeKind.REMOVE]

    def test_other_origin_writes_arrive_as_storage_events(self, storage: MemoryStorage):
        """Test a cache write from another tab reaches this tab as a storage event."""
        tab_a = AppContext(storage, origin="tab-a")
        tab_b = AppContext(storage, origin="tab-b")
        seen_by_a, seen_by_b = [], []
        tab_a.bus.subscribe(EntityType.ENQUIRIES, seen_by_a.append)
        tab_b.bus.subscribe(EntityType.ENQUIRIES, seen_by_b.append)

        tab_b.cache.add(EntityType.ENQUIRIES, {"id": "ENQ-1", "name": "Ali"})

        assert [(e.kind, e.origin) for e in seen_by_a] == [(ChangeKind.STORAGE, "tab-b")]
        assert [e.kind for e in seen_by_b] == [ChangeKind.ADD]
        tab_a.close()
        tab_b.close()

    def test_unrelated_keys_are_ignored(self, storage: MemoryStorage):
        """Test storage writes to non-collection keys produce no events."""
        bus = ChangeBus(storage, "tab-a")
        received = []
        bus.subscribe(EntityType.ENQUIRIES, received.append)

        storage.set_item("rolePerms:role-frontdesk", "{}", origin="tab-b")

        assert received == []

    def test_close_detaches_from_storage(self, storage: MemoryStorage):
        """Test a closed bus stops receiving storage events."""
        bus = ChangeBus(storage, "tab-a")
        received = []
        bus.subscribe(EntityType.COURSES, received.append)

        bus.close()
        storage.set_item("admin.courses", "[]", origin="tab-b")

        assert received == []


class TestCollectionWatcher:
    """Headless views refreshed by events and ticks."""

    @pytest.mark.asyncio
    async def test_tick_refreshes_records(
        self, offline_service: ReconciliationService, context: AppContext
    ):
        """Test a tick reconciles and reports changes."""
        changes = []
        watcher = CollectionWatcher(offline_service, EntityType.ENQUIRIES, on_change=changes.append)
        context.cache.add(EntityType.ENQUIRIES, {"id": "ENQ-1", "name": "Ali"})

        assert watcher.pending_change
        records = await watcher.tick()

        assert [r.id for r in records] == ["ENQ-1"]
        assert not watcher.pending_change
        assert len(changes) == 1

        await watcher.tick()
        assert watcher.refresh_count == 2
        assert len(changes) == 1
        await watcher.close()

    @pytest.mark.asyncio
    async def test_change_in_other_tab_marks_watcher_dirty(self, storage: MemoryStorage):
        """Test a write in another tab flags this tab's watcher."""
        tab_a = AppContext(storage, origin="tab-a")
        tab_b = AppContext(storage, origin="tab-b")
        watcher = CollectionWatcher(build_service(tab_a), EntityType.COURSES)

        await build_service(tab_b).commit(
            EntityType.COURSES, CreateIntent(payload={"name": "Python", "fees": 900})
        )

        assert watcher.pending_change
        records = await watcher.tick()
        assert [r.name for r in records] == ["Python"]
        await watcher.close()
        tab_a.close()
        tab_b.close()

    @pytest.mark.asyncio
    async def test_background_loop_picks_up_changes(
        self, offline_service: ReconciliationService, context: AppContext
    ):
        """Test the started loop refreshes after an event without waiting for the interval."""
        refreshed = asyncio.Event()
        watcher = CollectionWatcher(
            offline_service,
            EntityType.ENQUIRIES,
            interval=60,
            on_change=lambda records: refreshed.set() if records else None,
        )
        watcher.start()
        await asyncio.sleep(0)

        context.cache.add(EntityType.ENQUIRIES, {"id": "ENQ-1", "name": "Ali"})
        await asyncio.wait_for(refreshed.wait(), timeout=2)

        assert [r.id for r in watcher.records] == ["ENQ-1"]
        await watcher.close()
        assert offline_service.bus.subscriber_count(EntityType.ENQUIRIES) == 0

    @pytest.mark.asyncio
    async def test_closed_watcher_cannot_start(self, offline_service: ReconciliationService):
        """Test a closed watcher refuses to start again."""
        watcher = CollectionWatcher(offline_service, EntityType.ENQUIRIES)
        await watcher.close()

        with pytest.raises(RuntimeError):
            watcher.start()
