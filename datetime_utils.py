from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def from_epoch_ms(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(float(value) / 1000.0, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def to_epoch_ms(dt: Optional[datetime]) -> Optional[int]:
    value = ensure_utc(dt)
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 string, epoch milliseconds or a datetime into UTC."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return from_epoch_ms(value)

    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return ensure_utc(parsed)


def to_iso_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ISO-8601 UTC with a ``Z`` suffix."""

    value = ensure_utc(dt)
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def minutes_between(start: Optional[datetime], end: Optional[datetime]) -> int:
    if not start or not end:
        return 0
    delta = ensure_utc(end) - ensure_utc(start)
    minutes = int(delta.total_seconds() // 60)
    return minutes if minutes > 0 else 0


__all__ = [
    "UTC",
    "ensure_utc",
    "from_epoch_ms",
    "minutes_between",
    "parse_timestamp",
    "to_epoch_ms",
    "to_iso_utc",
    "utc_now",
]
