from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from institute.providers.public_api_client import PublicApiClient
from institute.providers.remote_store import RemoteStoreAdapter
from institute.schemas.auth_schemas import AuthUser
from institute.schemas.entity_schemas import EntityRecord, EntityType
from institute.schemas.reconciliation_schemas import (
    ChangeKind,
    CommitOutcome,
    CreateIntent,
    DeleteIntent,
    OutcomeSource,
    StoreErrorKind,
    SyncReport,
    UpdateIntent,
)
from institute.services.auth_service import is_owner
from institute.services.course_catalog import merge_remote_courses
from institute.services.reconciliation.registry import EntityDefinition, EntityRegistry
from institute.utils.datetime_utils import timestamp_or_epoch, utc_now_iso
from institute.utils.errors import AuthorizationError, RecordValidationError
from institute.utils.global_context import AppContext
from institute.utils.logging import get_logger

logger = get_logger()

SAVED_LOCALLY = "Saved locally"
# marks cache copies no upper tier has accepted yet
PENDING_SYNC_KEY = "pendingSync"

Intent = Union[CreateIntent, UpdateIntent, DeleteIntent]


class ReconciliationService:
    """
    Reads and writes entity collections across the remote store, the
    secondary API and the local cache.

    Reads merge all reachable tiers by identity (remote first). Writes try
    the tiers in order and always leave a cache copy, so the dashboard keeps
    working offline.
    """

    def __init__(
        self,
        context: AppContext,
        remote: RemoteStoreAdapter,
        api: PublicApiClient,
        owner_emails: Iterable[str] = (),
    ):
        self.context = context
        self.cache = context.cache
        self.bus = context.bus
        self.remote = remote
        self.api = api
        self.owner_emails = list(owner_emails or [])

    # Read path

    async def reconcile(self, entity_type: EntityType) -> List[EntityRecord]:
        """Merged, de-duplicated view of one collection, newest first."""
        definition = EntityRegistry.get(entity_type)
        model = definition.model
        merged: Dict[str, Tuple[EntityRecord, OutcomeSource]] = {}

        remote_result = await self.remote.select(
            definition.table, order=(definition.order_column, True)
        )
        if remote_result.ok:
            self._merge_rows(merged, model, remote_result.data, OutcomeSource.REMOTE)
            if definition.entity_type == EntityType.COURSES:
                merge_remote_courses(self.cache, remote_result.data)

        merge_cache = True
        if definition.api_path and self.api.configured():
            api_result = await self.api.list(definition.api_path)
            if api_result.ok:
                self._merge_rows(merged, model, api_result.data, OutcomeSource.API)
                merge_cache = False

        if merge_cache:
            self._merge_rows(
                merged, model, self.cache.get(definition.entity_type), OutcomeSource.LOCAL
            )

        records = self._dedupe_natural_key(definition, merged.values())
        return sorted(records, key=lambda r: timestamp_or_epoch(r.created_at), reverse=True)

    @staticmethod
    def _merge_rows(
        merged: Dict[str, Tuple[EntityRecord, OutcomeSource]],
        model,
        rows: Optional[List[Dict[str, Any]]],
        source: OutcomeSource,
    ) -> None:
        for row in rows or []:
            record = model.from_row(row)
            if record is None or record.id in merged:
                continue
            merged[record.id] = (record, source)

    @staticmethod
    def _dedupe_natural_key(
        definition: EntityDefinition,
        entries: Iterable[Tuple[EntityRecord, OutcomeSource]],
    ) -> List[EntityRecord]:
        entries = list(entries)
        if not definition.natural_key:
            return [record for record, _ in entries]

        # remote-sourced copies win over local-only ones with the same key
        winners: Dict[str, Tuple[EntityRecord, OutcomeSource]] = {}
        order: List[str] = []
        for record, source in entries:
            key = record.natural_key() or f"id:{record.id}"
            current = winners.get(key)
            if current is None:
                winners[key] = (record, source)
                order.append(key)
            elif current[1] != OutcomeSource.REMOTE and source == OutcomeSource.REMOTE:
                winners[key] = (record, source)
        return [winners[key][0] for key in order]

    # Write path

    async def commit(
        self,
        entity_type: EntityType,
        intent: Intent,
        actor: Optional[AuthUser] = None,
    ) -> CommitOutcome:
        definition = EntityRegistry.get(entity_type)
        if isinstance(intent, CreateIntent):
            return await self._create(definition, intent)
        if isinstance(intent, UpdateIntent):
            return await self._update(definition, intent)
        if isinstance(intent, DeleteIntent):
            return await self._delete(definition, intent, actor)
        raise TypeError(f"Unsupported intent: {type(intent).__name__}")

    def _cache_copy(self, definition: EntityDefinition, record: EntityRecord, source: OutcomeSource) -> Dict[str, Any]:
        item = record.to_cache()
        if source != OutcomeSource.LOCAL and definition.remote_cache_prefix:
            item["id"] = f"{definition.remote_cache_prefix}{record.id}"
        if source == OutcomeSource.LOCAL:
            item[PENDING_SYNC_KEY] = True
        return item

    async def _create(self, definition: EntityDefinition, intent: CreateIntent) -> CommitOutcome:
        model = definition.model
        payload = dict(intent.payload)
        missing = model.missing_required(payload)
        if missing:
            raise RecordValidationError(f"Missing required fields: {', '.join(missing)}")

        local_id = payload.get("id") or self.cache.next_local_id(definition)
        payload["id"] = local_id
        if not payload.get("created_at") and not payload.get("createdAt"):
            payload["created_at"] = utc_now_iso()
        draft = model.from_row(payload)
        if draft is None:
            raise RecordValidationError("Invalid payload")

        record, source = None, OutcomeSource.LOCAL
        row = draft.to_remote_row()
        if definition.client_assigned_ids:
            result = await self.remote.upsert(definition.table, row)
        else:
            result = await self.remote.insert(definition.table, row)
        if result.ok:
            record = model.from_row(result.data) or draft
            source = OutcomeSource.REMOTE
        elif definition.api_path and self.api.configured():
            api_result = await self.api.create(definition.api_path, row)
            if api_result.ok:
                record = model.from_row(api_result.data)
                source = OutcomeSource.API if record is not None else OutcomeSource.LOCAL

        if record is None:
            record = draft
        cached = self.cache.add(definition.entity_type, self._cache_copy(definition, record, source))
        logger.info(f"Created {definition.entity_type.value} {record.id} via {source.value}")

        return CommitOutcome(
            ok=True,
            source=source,
            record=cached,
            notice=SAVED_LOCALLY if source == OutcomeSource.LOCAL else None,
        )

    async def _current_record(self, definition: EntityDefinition, record_id: str) -> Optional[Dict[str, Any]]:
        cached = self.cache.find(definition.entity_type, record_id)
        if cached is not None:
            return cached
        result = await self.remote.select(definition.table, filters={"id": record_id}, limit=1)
        if result.ok and result.data:
            record = definition.model.from_row(result.data[0])
            return record.to_cache() if record else None
        return None

    async def _update(self, definition: EntityDefinition, intent: UpdateIntent) -> CommitOutcome:
        model = definition.model
        record_id = model.canonical_id(intent.record_id)
        cache_patch = model.cache_patch(intent.patch)

        current = None
        if model.PATCH_NEEDS_CURRENT:
            current = await self._current_record(definition, record_id)
        columns = model.remote_patch(intent.patch, current)

        result = await self.remote.update(
            definition.table, record_id, columns, definition.key_columns
        )
        if result.ok:
            record = model.from_row(result.data)
            cached = self.cache.upsert(definition.entity_type, record_id, cache_patch)
            if cached is None:
                self.bus.publish(
                    definition.entity_type,
                    ChangeKind.UPSERT,
                    record.to_cache() if record else None,
                    record_id=record_id,
                )
            return CommitOutcome(
                ok=True,
                source=OutcomeSource.REMOTE,
                record=record.to_cache() if record else cached,
            )

        cached = self.cache.upsert(definition.entity_type, intent.record_id, cache_patch)
        if cached is not None:
            logger.info(f"Updated {definition.entity_type.value} {intent.record_id} locally only")
            return CommitOutcome(
                ok=True, source=OutcomeSource.LOCAL, record=cached, notice=SAVED_LOCALLY
            )
        return CommitOutcome(
            ok=False,
            source=OutcomeSource.NONE,
            error=result.message or f"{definition.entity_type.value} {intent.record_id} not found",
        )

    async def _delete(
        self, definition: EntityDefinition, intent: DeleteIntent, actor: Optional[AuthUser]
    ) -> CommitOutcome:
        if not is_owner(actor, self.owner_emails):
            raise AuthorizationError("Only owners can delete records", "OWNER_REQUIRED")

        record_id = definition.model.canonical_id(intent.record_id)

        if definition.api_delete_path and self.api.configured():
            result = await self.api.delete(
                definition.api_delete_path, record_id, token=actor.access_token
            )
            if result.is_auth_failure:
                raise AuthorizationError(result.message or "Forbidden", "DELETE_FORBIDDEN")
            if result.ok:
                self._purge(definition, intent.record_id)
                return CommitOutcome(ok=True, source=OutcomeSource.API)

        for table in definition.tables_for_delete:
            result = await self.remote.delete(table, record_id, definition.key_columns)
            if result.ok:
                self._purge(definition, intent.record_id)
                return CommitOutcome(ok=True, source=OutcomeSource.REMOTE)
            if result.is_auth_failure:
                raise AuthorizationError(result.message or "Forbidden", "DELETE_FORBIDDEN")
            if result.error == StoreErrorKind.DISABLED:
                break

        if self.cache.remove(definition.entity_type, intent.record_id):
            return CommitOutcome(ok=True, source=OutcomeSource.LOCAL)

        return CommitOutcome(
            ok=False,
            source=OutcomeSource.NONE,
            error=f"Could not delete {definition.entity_type.value} {intent.record_id}",
        )

    def _purge(self, definition: EntityDefinition, record_id: str) -> None:
        """Drop the cache copy after an upper tier accepted the delete."""
        if not self.cache.remove(definition.entity_type, record_id):
            self.bus.publish(definition.entity_type, ChangeKind.REMOVE, record_id=str(record_id))

    # Offline write-back

    def pending(self, entity_type: EntityType) -> List[Dict[str, Any]]:
        """Cache records written while every upper tier was unreachable, oldest first."""
        local = [r for r in self.cache.get(entity_type) if r.get(PENDING_SYNC_KEY)]
        return list(reversed(local))

    async def sync_pending(self, entity_type: EntityType) -> SyncReport:
        """
        Push local-only cache records to the remote store.

        Entities with a natural key update the remote row carrying the same
        key instead of inserting a duplicate. Each pushed record replaces its
        local copy in the cache.
        """
        definition = EntityRegistry.get(entity_type)
        model = definition.model
        report = SyncReport(entity_type=definition.entity_type)

        for cached in self.pending(entity_type):
            local_id = str(cached["id"])
            record = model.from_row(cached)
            if record is None:
                report.failed.append(local_id)
                continue

            row = record.to_remote_row()
            if definition.natural_key:
                result = await self._write_by_natural_key(definition, record, row)
            elif definition.client_assigned_ids:
                result = await self.remote.upsert(definition.table, row)
            else:
                result = await self.remote.insert(definition.table, row)

            if not result.ok:
                report.failed.append(local_id)
                continue

            stored = model.from_row(result.data) or record
            self.cache.supersede(
                definition.entity_type,
                local_id,
                self._cache_copy(definition, stored, OutcomeSource.REMOTE),
            )
            report.pushed.append(local_id)

        if report.pushed or report.failed:
            logger.info(
                f"Synced {definition.entity_type.value}: {len(report.pushed)} pushed, {len(report.failed)} pending"
            )
        return report

    async def _write_by_natural_key(self, definition: EntityDefinition, record: EntityRecord, row: Dict[str, Any]):
        key_value = getattr(record, definition.natural_key)
        existing = await self.remote.select(
            definition.table, filters={definition.natural_key: key_value}, limit=1
        )
        if not existing.ok:
            return existing
        if existing.data:
            remote_id = definition.model.from_row(existing.data[0])
            if remote_id is not None:
                return await self.remote.update(
                    definition.table, remote_id.id, row, definition.key_columns
                )
        return await self.remote.insert(definition.table, row)
