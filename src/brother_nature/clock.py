"""UTC time helpers shared by the storage layer and the core services.

Timestamps are persisted as fixed-width ISO-8601 strings
(``2026-10-19T08:15:02.123456Z``) so that SQLite string comparison orders them
correctly in conditional updates such as ``expires_at >= ?``.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]

_DB_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_db(value: datetime) -> str:
    """Serialize an aware datetime into the fixed-width storage format."""
    if value.tzinfo is None:
        raise ValueError("naive datetimes cannot be stored")
    return value.astimezone(UTC).strftime(_DB_FORMAT)


def from_db(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if value is None:
        return None
    return datetime.strptime(value, _DB_FORMAT).replace(tzinfo=UTC)


def to_display(value: datetime) -> str:
    """Render a timestamp with millisecond precision for human-facing text."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
