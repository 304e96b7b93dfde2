from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from institute.config.settings import Settings
from institute.schemas.reconciliation_schemas import StoreErrorKind, StoreResult
from institute.utils.logging import get_logger
from institute.utils.warning_registry import WarningRegistry

logger = get_logger()

# PostgREST / Postgres error codes that mean the caller lacks rights
_UNAUTHORIZED_CODES = {"PGRST301", "PGRST302"}
_FORBIDDEN_CODES = {"42501"}


def id_encodings(record_id: Any) -> List[Any]:
    """Value encodings tried when matching an id: the integer form first when numeric, then the string."""
    text = str(record_id).strip()
    encodings: List[Any] = []
    if text.lstrip("-").isdigit():
        encodings.append(int(text))
    encodings.append(text)
    return encodings


def _api_error_kind(error: APIError) -> StoreErrorKind:
    code = str(getattr(error, "code", "") or "")
    if code in _UNAUTHORIZED_CODES:
        return StoreErrorKind.UNAUTHORIZED
    if code in _FORBIDDEN_CODES:
        return StoreErrorKind.FORBIDDEN
    return StoreErrorKind.TRANSIENT


class RemoteStoreAdapter:
    """
    Table operations against the Supabase store.

    Expected failures are never raised: every call returns a `StoreResult`.
    When no client is configured each call returns a `disabled` result
    without I/O and a single warning is logged per registry.
    """

    def __init__(self, client: Optional[AsyncClient], warnings: Optional[WarningRegistry] = None):
        self.client = client
        self.warnings = warnings or WarningRegistry()

    def configured(self) -> bool:
        return self.client is not None

    def _disabled(self) -> StoreResult:
        self.warnings.warn_once(
            "remote-store",
            "Supabase is not configured (SUPABASE_URL / SUPABASE_ANON_KEY); using local data only",
        )
        return StoreResult.failure(StoreErrorKind.DISABLED, "Remote store not configured")

    async def _run(self, description: str, query) -> StoreResult:
        try:
            response = await query.execute()
        except APIError as e:
            logger.warning(f"Remote {description} failed: {e.message} ({e.code})")
            return StoreResult.failure(_api_error_kind(e), e.message)
        except httpx.HTTPError as e:
            logger.warning(f"Remote {description} failed: {e}")
            return StoreResult.failure(StoreErrorKind.TRANSIENT, str(e))
        return StoreResult.success(response.data)

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[Tuple[str, bool]] = None,
        limit: Optional[int] = None,
    ) -> StoreResult:
        """Select rows; `order` is `(column, descending)`."""
        if not self.configured():
            return self._disabled()

        query = self.client.table(table).select("*")
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        if order:
            query = query.order(order[0], desc=order[1])
        if limit:
            query = query.limit(limit)

        result = await self._run(f"select on {table}", query)
        if result.ok and result.data is None:
            result.data = []
        return result

    async def insert(self, table: str, row: Dict[str, Any]) -> StoreResult:
        """Insert one row; data is the inserted row as returned by the store."""
        if not self.configured():
            return self._disabled()

        result = await self._run(f"insert into {table}", self.client.table(table).insert(row))
        if not result.ok:
            return result
        rows = result.data or []
        if not rows:
            return StoreResult.failure(StoreErrorKind.TRANSIENT, "Insert returned no row")
        return StoreResult.success(rows[0])

    async def upsert(
        self, table: str, row: Dict[str, Any], on_conflict: str = "id"
    ) -> StoreResult:
        if not self.configured():
            return self._disabled()

        result = await self._run(
            f"upsert into {table}",
            self.client.table(table).upsert(row, on_conflict=on_conflict),
        )
        if not result.ok:
            return result
        rows = result.data or []
        return StoreResult.success(rows[0] if rows else row)

    async def update(
        self,
        table: str,
        record_id: Any,
        patch: Dict[str, Any],
        key_columns: Sequence[str] = ("id",),
    ) -> StoreResult:
        """
        Update the row identified by `record_id`.

        Tries every key column with every id encoding; the first attempt that
        matches at least one row wins and its first row is returned.
        """
        if not self.configured():
            return self._disabled()

        last = StoreResult.failure(StoreErrorKind.NOT_FOUND, f"No {table} row matched {record_id}")
        for column in key_columns:
            for value in id_encodings(record_id):
                result = await self._run(
                    f"update on {table}.{column}",
                    self.client.table(table).update(patch).eq(column, value),
                )
                if result.ok and result.data:
                    return StoreResult.success(result.data[0])
                if not result.ok:
                    if result.is_auth_failure:
                        return result
                    last = result
        return last

    async def delete(
        self, table: str, record_id: Any, key_columns: Sequence[str] = ("id",)
    ) -> StoreResult:
        """Delete the row identified by `record_id`; data is the number of removed rows."""
        if not self.configured():
            return self._disabled()

        last = StoreResult.failure(StoreErrorKind.NOT_FOUND, f"No {table} row matched {record_id}")
        for column in key_columns:
            for value in id_encodings(record_id):
                result = await self._run(
                    f"delete on {table}.{column}",
                    self.client.table(table).delete().eq(column, value),
                )
                if result.ok and result.data:
                    return StoreResult.success(len(result.data))
                if not result.ok:
                    if result.is_auth_failure:
                        return result
                    last = result
        return last


async def create_supabase_client(settings: Settings, admin: bool = False) -> Optional[AsyncClient]:
    """Async Supabase client from settings, or None when the store is not configured."""
    if admin:
        if not settings.supabase_admin_configured:
            return None
        return await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    if not settings.supabase_configured:
        return None
    return await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
