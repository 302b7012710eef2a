"""Base helpers shared by hookrelay models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("whk") -> "whk_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def isoformat(dt: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision.

    Naive datetimes are assumed to be UTC.

    Examples:
        isoformat(datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)) -> "2024-01-02T03:04:05.000Z"
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_unix(seconds: int | float | None) -> str | None:
    """Convert a unix timestamp (seconds) to an ISO-8601 string, or None."""
    if seconds is None:
        return None
    return isoformat(datetime.fromtimestamp(seconds, tz=UTC))
