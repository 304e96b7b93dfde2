from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError

from institute.db.models import StorageEntry
from institute.db.session import create_session_factory, create_storage_engine
from institute.utils.errors import StorageUnavailableError
from institute.utils.logging import get_logger

logger = get_logger()

# (key, origin) of the write that changed a key
StorageListener = Callable[[str, Optional[str]], None]


class KeyValueStorage(ABC):
    """
    String key/value persistence shared by every cache instance of one process.

    Writes carry an optional origin tag. Listeners registered with
    `add_listener` are told which key changed and who wrote it, so a cache
    instance can react to writes made by another instance (another "tab").
    Backends raise `StorageUnavailableError` when they cannot serve a call.
    """

    def __init__(self):
        self._listeners: List[StorageListener] = []

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def _write(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def _delete(self, key: str) -> None:
        pass

    def set_item(self, key: str, value: str, origin: Optional[str] = None) -> None:
        self._write(key, value)
        self._notify(key, origin)

    def remove_item(self, key: str, origin: Optional[str] = None) -> None:
        self._delete(key)
        self._notify(key, origin)

    def add_listener(self, listener: StorageListener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, key: str, origin: Optional[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, origin)
            except Exception as e:
                logger.error(f"Storage listener failed for key {key}: {e}")


class MemoryStorage(KeyValueStorage):
    """In-process storage with an optional byte quota, mirroring a browser's local storage."""

    def __init__(self, quota_bytes: Optional[int] = None):
        super().__init__()
        self._items: Dict[str, str] = {}
        self.quota_bytes = quota_bytes
        self.available = True

    def get_item(self, key: str) -> Optional[str]:
        if not self.available:
            raise StorageUnavailableError("Storage is disabled")
        return self._items.get(key)

    def _write(self, key: str, value: str) -> None:
        if not self.available:
            raise StorageUnavailableError("Storage is disabled")
        if self.quota_bytes is not None:
            used = sum(
                len(k) + len(v) for k, v in self._items.items() if k != key
            )
            if used + len(key) + len(value) > self.quota_bytes:
                raise StorageUnavailableError(
                    f"Quota exceeded writing {key}", error_code="QUOTA_EXCEEDED"
                )
        self._items[key] = value

    def _delete(self, key: str) -> None:
        if not self.available:
            raise StorageUnavailableError("Storage is disabled")
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items.keys())


class SqlStorage(KeyValueStorage):
    """Storage persisted in a SQL database (SQLite by default), one row per key."""

    def __init__(self, database_url: str):
        super().__init__()
        self.engine = create_storage_engine(database_url)
        self.SessionLocal = create_session_factory(self.engine)

    def get_item(self, key: str) -> Optional[str]:
        try:
            with self.SessionLocal() as session:
                return session.execute(
                    select(StorageEntry.value).where(StorageEntry.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Failed to read {key}: {e}") from e

    def _write(self, key: str, value: str) -> None:
        try:
            with self.SessionLocal() as session:
                session.merge(StorageEntry(key=key, value=value))
                session.commit()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Failed to write {key}: {e}") from e

    def _delete(self, key: str) -> None:
        try:
            with self.SessionLocal() as session:
                session.execute(delete(StorageEntry).where(StorageEntry.key == key))
                session.commit()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Failed to delete {key}: {e}") from e

    def dispose(self) -> None:
        self.engine.dispose()
