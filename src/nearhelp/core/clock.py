"""
UTC time helpers

All timestamps are stored as ISO-8601 strings with microsecond precision
and an explicit +00:00 offset so that string comparison in SQL matches
chronological order.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_utc_day(now: Optional[datetime] = None) -> datetime:
    """00:00 UTC of the day containing ``now``"""
    now = (now or utc_now()).astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
