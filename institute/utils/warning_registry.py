from typing import Set

from institute.utils.logging import get_logger

logger = get_logger()


class WarningRegistry:
    """Configuration warnings logged once per owner (one per app context)."""

    def __init__(self):
        self._seen: Set[str] = set()

    def warn_once(self, key: str, message: str) -> bool:
        """Log `message` the first time `key` is seen; True when it was logged."""
        if key in self._seen:
            return False
        self._seen.add(key)
        logger.warning(message)
        return True

    def reset(self) -> None:
        self._seen.clear()
