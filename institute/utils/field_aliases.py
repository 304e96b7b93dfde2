from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


def first_present(row: Mapping[str, Any], aliases: Iterable[str], default: Any = None) -> Any:
    """Return the value of the first alias present in `row` with a non-null value."""
    for alias in aliases:
        value = row.get(alias)
        if value is not None:
            return value
    return default


def resolve_fields(
    row: Mapping[str, Any], alias_map: Mapping[str, Tuple[str, ...]]
) -> Dict[str, Any]:
    """
    Resolve every logical field of `alias_map` against a loosely-shaped row.

    Fields without any present alias are left out, so model defaults apply.
    """
    resolved: Dict[str, Any] = {}
    for field, aliases in alias_map.items():
        value = first_present(row, aliases)
        if value is not None:
            resolved[field] = value
    return resolved


def is_blank(value: Optional[Any]) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
