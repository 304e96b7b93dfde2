from typing import Any, Dict, List, Mapping

from fastapi import Request

from institute.db.json_store import JsonCollectionStore
from institute.providers.remote_store import RemoteStoreAdapter
from institute.schemas.submission_schemas import (
    PublicApplication,
    PublicApplicationCreate,
    PublicEnquiry,
    PublicEnquiryCreate,
)
from institute.utils.datetime_utils import epoch_ms, utc_now_iso
from institute.utils.errors import DatabaseError, NotFoundError
from institute.utils.logging import get_logger

logger = get_logger()

ENQUIRIES_TABLE = "public_enquiries"
APPLICATIONS_TABLE = "public_applications"
ENQUIRIES_COLLECTION = "public-enquiries"
APPLICATIONS_COLLECTION = "public-applications"
APPLICATION_DELETE_TABLES = ("applications", "public_applications")
APPLICATION_KEY_COLUMNS = ("app_id", "id")


def _text(row: Mapping[str, Any], key: str) -> str:
    value = row.get(key)
    return str(value) if value is not None else ""


def _preferred_start(row: Mapping[str, Any]):
    return row.get("preferred_start") or row.get("preferredStart") or None


def _created_at(row: Mapping[str, Any]) -> str:
    return str(row.get("created_at") or row.get("createdAt") or "")


class SubmissionService:
    """Public enquiries and applications: Supabase when configured, else the server store."""

    def __init__(self, remote: RemoteStoreAdapter, store: JsonCollectionStore):
        self.remote = remote
        self.store = store

    async def _insert(self, table: str, collection: str, item: Dict[str, Any], row: Dict[str, Any]) -> None:
        if self.remote.configured():
            result = await self.remote.insert(table, row)
            if not result.ok:
                raise DatabaseError(result.message or f"Failed to store {table} row")
            return
        items = self.store.read_all(collection)
        items.insert(0, item)
        self.store.write_all(collection, items)

    async def _list(self, table: str, collection: str) -> List[Dict[str, Any]]:
        if self.remote.configured():
            result = await self.remote.select(table, order=("created_at", True))
            if not result.ok:
                raise DatabaseError(result.message or f"Failed to read {table}")
            return result.data
        return self.store.read_all(collection)

    async def create_enquiry(self, payload: PublicEnquiryCreate) -> PublicEnquiry:
        enquiry = PublicEnquiry(
            id=f"ENQ-{epoch_ms()}",
            name=payload.name,
            course=payload.course,
            contact=payload.contact,
            email=payload.email or None,
            preferred_start=payload.preferred_start or None,
            created_at=utc_now_iso(),
        )
        await self._insert(
            ENQUIRIES_TABLE,
            ENQUIRIES_COLLECTION,
            enquiry.to_json_dict(),
            enquiry.model_dump(),
        )
        logger.info(f"Stored public enquiry {enquiry.id}")
        return enquiry

    async def list_enquiries(self) -> List[PublicEnquiry]:
        rows = await self._list(ENQUIRIES_TABLE, ENQUIRIES_COLLECTION)
        return [
            PublicEnquiry(
                id=_text(row, "id"),
                name=_text(row, "name"),
                course=_text(row, "course"),
                contact=_text(row, "contact"),
                email=row.get("email") or None,
                preferred_start=_preferred_start(row),
                created_at=_created_at(row),
            )
            for row in rows
        ]

    async def create_application(self, payload: PublicApplicationCreate) -> PublicApplication:
        application = PublicApplication(
            id=f"APP-{epoch_ms()}",
            name=payload.name,
            email=payload.email,
            phone=payload.phone,
            course=payload.course,
            preferred_start=payload.preferred_start or None,
            created_at=utc_now_iso(),
        )
        await self._insert(
            APPLICATIONS_TABLE,
            APPLICATIONS_COLLECTION,
            application.to_json_dict(),
            application.model_dump(),
        )
        logger.info(f"Stored public application {application.id}")
        return application

    async def list_applications(self) -> List[PublicApplication]:
        rows = await self._list(APPLICATIONS_TABLE, APPLICATIONS_COLLECTION)
        return [
            PublicApplication(
                id=_text(row, "id"),
                name=_text(row, "name"),
                email=_text(row, "email"),
                phone=_text(row, "phone"),
                course=_text(row, "course"),
                preferred_start=_preferred_start(row),
                created_at=_created_at(row),
            )
            for row in rows
        ]

    async def delete_application(self, record_id: str) -> Dict[str, Any]:
        """Delete across both application tables and both key columns; returns where it was removed."""
        if self.remote.configured():
            for table in APPLICATION_DELETE_TABLES:
                result = await self.remote.delete(table, record_id, APPLICATION_KEY_COLUMNS)
                if result.ok:
                    logger.info(f"Deleted application {record_id} from {table}")
                    return {"removedId": record_id, "source": table}
            raise NotFoundError("Not found")

        items = self.store.read_all(APPLICATIONS_COLLECTION)
        remaining = [item for item in items if str(item.get("id")) != record_id]
        if len(remaining) == len(items):
            raise NotFoundError("Not found")
        self.store.write_all(APPLICATIONS_COLLECTION, remaining)
        return {"removedId": record_id}


def get_submission_service(request: Request) -> SubmissionService:
    return SubmissionService(request.app.state.server_remote, request.app.state.server_store)
