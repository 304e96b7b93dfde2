from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision and a `Z` suffix."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_ms() -> int:
    """Milliseconds since the Unix epoch, used for locally synthesized identifiers."""
    return int(utc_now().timestamp() * 1000)


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a timezone-aware UTC datetime.

    Accepts a trailing `Z` and date-only values. Naive values are assumed to be UTC.

    Returns:
        datetime or None when the value is missing or unparseable
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def timestamp_or_epoch(value: Optional[str]) -> float:
    """Sort key for ISO timestamps; missing or invalid values sort as the epoch."""
    parsed = parse_iso(value)
    return parsed.timestamp() if parsed else 0.0


def iso_plus_days(value: Optional[str], days: int) -> Optional[str]:
    parsed = parse_iso(value)
    if parsed is None:
        return None
    return (parsed + timedelta(days=days)).isoformat().replace("+00:00", "Z")


def same_day(value: Optional[str], day: date) -> bool:
    """True when the ISO value falls on `day` (compares the date part of the string, UTC)."""
    if not value or not isinstance(value, str):
        return False
    return value[:10] == day.isoformat()
