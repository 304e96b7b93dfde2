from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from institute.schemas.camel_base_model import CamelCaseBaseModel
from institute.schemas.entity_schemas import EntityType


class StoreErrorKind(str, Enum):
    DISABLED = "disabled"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    TRANSIENT = "transient"
    INVALID = "invalid"


class StoreResult(BaseModel):
    """Tagged result returned by the remote store adapter and the API client instead of raising."""

    ok: bool = Field(..., description="Whether the call succeeded")
    data: Any = Field(None, description="Rows, a single row or a count, depending on the call")
    error: Optional[StoreErrorKind] = Field(None, description="Failure kind when not ok")
    message: Optional[str] = Field(None, description="Human readable failure detail")
    status_code: Optional[int] = Field(None, description="Upstream HTTP status, when known")

    @classmethod
    def success(cls, data: Any = None, status_code: Optional[int] = None) -> "StoreResult":
        return cls(ok=True, data=data, status_code=status_code)

    @classmethod
    def failure(
        cls,
        error: StoreErrorKind,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> "StoreResult":
        return cls(ok=False, error=error, message=message, status_code=status_code)

    @property
    def is_auth_failure(self) -> bool:
        return self.error in (StoreErrorKind.UNAUTHORIZED, StoreErrorKind.FORBIDDEN)


class OutcomeSource(str, Enum):
    REMOTE = "remote"
    API = "api"
    LOCAL = "local"
    NONE = "none"


class CreateIntent(BaseModel):
    payload: Dict[str, Any] = Field(..., description="Logical (snake_case) fields of the new record")


class UpdateIntent(BaseModel):
    record_id: str = Field(..., description="Identity of the record to patch")
    patch: Dict[str, Any] = Field(..., description="Logical fields to overwrite")


class DeleteIntent(BaseModel):
    record_id: str = Field(..., description="Identity of the record to delete")


class CommitOutcome(CamelCaseBaseModel):
    ok: bool = Field(..., description="Whether any tier accepted the write")
    source: OutcomeSource = Field(..., description="Tier that accepted the write")
    record: Optional[Dict[str, Any]] = Field(None, description="Canonical record after the write")
    notice: Optional[str] = Field(None, description="Soft notice shown to the user")
    error: Optional[str] = Field(None, description="Failure detail when not ok")


class SyncReport(CamelCaseBaseModel):
    entity_type: EntityType
    pushed: List[str] = Field(default_factory=list, description="Local ids now stored remotely")
    failed: List[str] = Field(default_factory=list, description="Local ids that are still local-only")


class ChangeKind(str, Enum):
    ADD = "add"
    UPSERT = "upsert"
    REMOVE = "remove"
    SYNC = "sync"
    STORAGE = "storage"


class ChangeEvent(BaseModel):
    entity_type: EntityType
    kind: ChangeKind
    record: Optional[Dict[str, Any]] = None
    record_id: Optional[str] = None
    origin: Optional[str] = None
