import uuid
from typing import Optional

from institute.db.storage import KeyValueStorage
from institute.services.local_cache import LocalCache
from institute.services.notifications.bus import ChangeBus
from institute.utils.warning_registry import WarningRegistry


class AppContext:
    """
    Process-wide collaborators of one client instance ("tab").

    Several contexts may share one storage backend; each gets its own origin
    tag, change bus, cache and warning registry so writes made through one
    context surface as storage events in the others.
    """

    def __init__(self, storage: KeyValueStorage, origin: Optional[str] = None):
        self.storage = storage
        self.origin = origin or f"ctx-{uuid.uuid4().hex[:8]}"
        self.bus = ChangeBus(storage, self.origin)
        self.cache = LocalCache(storage, self.bus, self.origin)
        self.warnings = WarningRegistry()

    def close(self) -> None:
        self.bus.close()
