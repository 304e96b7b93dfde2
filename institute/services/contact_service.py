import random
import string
from typing import Any, Dict, List, Mapping, Optional, Tuple

from fastapi import Request

from institute.db.json_store import JsonCollectionStore
from institute.providers.remote_store import RemoteStoreAdapter
from institute.schemas.submission_schemas import (
    ContactSubmission,
    ContactSubmissionCreate,
    ContactUpdateRequest,
)
from institute.utils.datetime_utils import epoch_ms, utc_now_iso
from institute.utils.errors import NotFoundError
from institute.utils.logging import get_logger

logger = get_logger()

CONTACTS_TABLE = "contact_submissions"
CONTACTS_COLLECTION = "contact-submissions"
CSV_COLUMNS = ("id", "name", "email", "message", "createdAt", "ip")

_BASE36 = string.digits + string.ascii_lowercase


def new_submission_id() -> str:
    suffix = "".join(random.choice(_BASE36) for _ in range(6))
    return f"{epoch_ms()}-{suffix}"


def quote_csv(value: str) -> str:
    escaped = value.replace('"', '""')
    return f'"{escaped}"' if any(ch in value for ch in '",\n') else escaped


def _from_row(row: Mapping[str, Any]) -> ContactSubmission:
    return ContactSubmission(
        id=str(row.get("id")),
        name=str(row.get("name") or ""),
        email=str(row.get("email") or ""),
        message=str(row.get("message") or ""),
        created_at=str(row.get("created_at") or row.get("createdAt") or ""),
        ip=row.get("ip"),
    )


class ContactService:
    """
    Contact form submissions.

    Supabase is tried first for every operation; when it is not configured or
    a call fails the server store is used instead.
    """

    def __init__(self, remote: RemoteStoreAdapter, store: JsonCollectionStore):
        self.remote = remote
        self.store = store

    def _read_store(self) -> List[ContactSubmission]:
        return [_from_row(row) for row in self.store.read_all(CONTACTS_COLLECTION)]

    def _write_store(self, items: List[ContactSubmission]) -> None:
        self.store.write_all(CONTACTS_COLLECTION, [item.to_json_dict() for item in items])

    async def submit(
        self, payload: ContactSubmissionCreate, ip: Optional[str] = None
    ) -> Tuple[ContactSubmission, str]:
        """Store a submission; returns it with where it was stored (supabase or filesystem)."""
        submission = ContactSubmission(
            id=new_submission_id(),
            name=payload.name.strip(),
            email=payload.email.strip().lower(),
            message=payload.message.strip(),
            created_at=utc_now_iso(),
            ip=ip,
        )

        if self.remote.configured():
            result = await self.remote.insert(CONTACTS_TABLE, submission.model_dump())
            if result.ok:
                return submission, "supabase"
            logger.warning(f"Failed to insert contact submission: {result.message}")

        items = self._read_store()
        items.append(submission)
        self._write_store(items)
        return submission, "filesystem"

    async def list(self) -> List[ContactSubmission]:
        """All submissions, oldest first."""
        items: Optional[List[ContactSubmission]] = None
        if self.remote.configured():
            result = await self.remote.select(CONTACTS_TABLE, order=("created_at", False))
            if result.ok:
                items = [_from_row(row) for row in result.data]
            else:
                logger.warning(f"Failed to fetch contact submissions: {result.message}")
        if items is None:
            items = self._read_store()
        return sorted(items, key=lambda item: item.created_at)

    async def export_csv(self) -> str:
        items = await self.list()
        lines = [",".join(CSV_COLUMNS)]
        for item in items:
            lines.append(
                ",".join(
                    [
                        item.id,
                        quote_csv(item.name),
                        item.email,
                        quote_csv(item.message),
                        item.created_at,
                        item.ip or "",
                    ]
                )
            )
        return "\n".join(lines)

    @staticmethod
    def _updates(request: ContactUpdateRequest) -> Dict[str, str]:
        updates: Dict[str, str] = {}
        if request.name is not None:
            updates["name"] = request.name.strip()
        if request.email is not None:
            updates["email"] = request.email.strip().lower()
        if request.message is not None:
            updates["message"] = request.message.strip()
        return updates

    async def update(self, request: ContactUpdateRequest) -> ContactSubmission:
        updates = self._updates(request)

        if self.remote.configured() and updates:
            result = await self.remote.update(CONTACTS_TABLE, request.id, updates, ("id",))
            if result.ok:
                return _from_row(result.data)
            logger.warning(f"Failed to update contact submission: {result.message}")

        items = self._read_store()
        for index, item in enumerate(items):
            if item.id == request.id:
                items[index] = item.model_copy(update=updates)
                self._write_store(items)
                return items[index]
        raise NotFoundError("Not found")

    async def delete(self, record_id: str) -> Dict[str, Any]:
        if self.remote.configured():
            result = await self.remote.delete(CONTACTS_TABLE, record_id, ("id",))
            if result.ok:
                return {"id": record_id}
            logger.warning(f"Failed to delete contact submission: {result.message}")

        items = self._read_store()
        remaining = [item for item in items if item.id != record_id]
        if len(remaining) == len(items):
            raise NotFoundError("Not found")
        removed = next(item for item in items if item.id == record_id)
        self._write_store(remaining)
        return removed.to_json_dict()


def get_contact_service(request: Request) -> ContactService:
    return ContactService(request.app.state.server_remote, request.app.state.server_store)
