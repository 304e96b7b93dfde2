import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from institute.schemas.entity_schemas import REMOTE_PROVENANCE_PREFIX, Course, EntityType
from institute.services.local_cache import LocalCache
from institute.utils.logging import get_logger

logger = get_logger()

_TOKEN_RE = re.compile(r"[a-z0-9+#]+")


def _name_key(name: Any) -> str:
    return str(name or "").strip().casefold()


def merge_remote_courses(cache: LocalCache, rows: Iterable[Mapping[str, Any]]) -> bool:
    """
    Warm the course cache with remote rows.

    Remote copies are stored as `SB-<remote id>` and replace every previous
    remote copy; local-only courses are kept unless a remote course has the
    same name. Writes only when the merged list differs from the cached one.

    Returns:
        bool: True when the cache was rewritten
    """
    existing = cache.get(EntityType.COURSES)
    local_only = [c for c in existing if not str(c.get("id", "")).startswith(REMOTE_PROVENANCE_PREFIX)]

    remote: List[Dict[str, Any]] = []
    for row in rows:
        course = Course.from_row(row)
        if course is None or not course.name.strip():
            continue
        item = course.to_cache()
        item["id"] = f"{REMOTE_PROVENANCE_PREFIX}{course.id}"
        remote.append(item)

    by_name: Dict[str, Dict[str, Any]] = {}
    for item in local_only:
        by_name[_name_key(item.get("name"))] = item
    for item in remote:
        by_name[_name_key(item.get("name"))] = item
    merged = list(by_name.values())

    if json.dumps(merged, sort_keys=True) == json.dumps(existing, sort_keys=True):
        return False
    cache.replace_all(EntityType.COURSES, merged)
    logger.debug(f"Course cache warmed with {len(remote)} remote courses")
    return True


def all_course_names(cache: LocalCache) -> List[str]:
    """Distinct course names from the cache, in cache order."""
    names: List[str] = []
    seen = set()
    for course in cache.get(EntityType.COURSES):
        name = str(course.get("name") or "").strip()
        if name and _name_key(name) not in seen:
            seen.add(_name_key(name))
            names.append(name)
    return names


def _tokens(value: str) -> set:
    return {token for token in _TOKEN_RE.findall(value.casefold()) if len(token) > 1}


def match_course(name: str, catalog: Iterable[str]) -> Optional[str]:
    """
    Resolve a free-text course reference against catalog names.

    Exact (case-insensitive) match first, then substring in either direction,
    then the catalog name sharing the most tokens with `name`.
    """
    needle = _name_key(name)
    if not needle:
        return None
    names = [c for c in catalog if _name_key(c)]

    for candidate in names:
        if _name_key(candidate) == needle:
            return candidate
    for candidate in names:
        key = _name_key(candidate)
        if needle in key or key in needle:
            return candidate

    wanted = _tokens(needle)
    best, best_overlap = None, 0
    for candidate in names:
        overlap = len(wanted & _tokens(candidate))
        if overlap > best_overlap:
            best, best_overlap = candidate, overlap
    return best
