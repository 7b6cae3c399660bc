"""UTC timestamp helpers."""

from datetime import date, datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Make a datetime timezone-aware in UTC.

    Naive datetimes (as returned by SQLite) are assumed to already be UTC.

    Example:
        >>> ensure_utc(datetime(2026, 1, 5, 9, 0)).tzinfo == timezone.utc
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string (``Z`` suffix allowed) to UTC, or None if unparseable."""
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def format_timestamp(dt: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC."""
    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_day(value: Optional[datetime] = None, fmt: str = "%Y-%m-%d") -> str:
    """Format the (UTC) calendar day of a datetime, defaulting to today."""
    value = value or utc_now()
    if isinstance(value, datetime):
        value = ensure_utc(value)
    elif not isinstance(value, date):
        raise TypeError(f"Expected datetime or date, got {type(value).__name__}")
    return value.strftime(fmt)
