"""Datetime utilities with consistent UTC timezone handling.

Every timestamp stored by Task CLI is timezone-aware and in UTC. These
helpers are the only place naive datetimes are turned into aware ones.
"""

from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    """Return current datetime in UTC timezone."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime is timezone-aware, assuming UTC if naive.

    Args:
        dt: Datetime to check/convert, or None

    Returns:
        Timezone-aware datetime in UTC, or None if input was None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
    """Convert datetime to an ISO 8601 string with timezone info."""
    if dt is None:
        return None

    return ensure_aware(dt).isoformat()


def parse_iso(value: str) -> datetime:
    """Parse an ISO 8601 / RFC 3339 string into an aware UTC datetime.

    A trailing ``Z`` is accepted as UTC.

    Raises:
        ValueError: If the string is not a valid timestamp
    """
    if not isinstance(value, str):
        raise ValueError(f"expected an ISO timestamp string, got {type(value).__name__}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))
