"""UTC timestamp helpers.

All timestamps handled by blobmirror are timezone-aware UTC datetimes with
microsecond precision. File modification times are converted through
nanosecond integers so that a value written with set_mtime() reads back
unchanged.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path

MARKER_TIME_FORMAT = "%Y%m%d%H%M"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach or convert to UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def from_ns(ns: int) -> datetime:
    """Convert a nanosecond epoch timestamp to a UTC datetime (microseconds)."""
    seconds, rest = divmod(ns, 1_000_000_000)
    return datetime.fromtimestamp(seconds, UTC).replace(microsecond=rest // 1000)


def to_ns(value: datetime) -> int:
    """Convert a datetime to a nanosecond epoch timestamp."""
    delta = ensure_utc(value) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1000


def file_mtime(path: Path) -> datetime:
    """Read the modification time of a file as a UTC datetime."""
    return from_ns(path.stat().st_mtime_ns)


def set_file_mtime(path: Path, value: datetime) -> None:
    """Set both access and modification time of a file."""
    ns = to_ns(value)
    os.utime(path, ns=(ns, ns))


def to_iso(value: datetime | None) -> str | None:
    """Serialize a datetime for storage."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def from_iso(value: str | None) -> datetime | None:
    """Parse a stored datetime."""
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def marker_time(value: datetime) -> str:
    """Format a datetime for MODIFIED/DELETED file markers."""
    return ensure_utc(value).strftime(MARKER_TIME_FORMAT)
