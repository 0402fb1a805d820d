"""
Time helpers.

The credential store keeps naive UTC datetimes (MySQL DATETIME has no
timezone), so everything that touches a stored timestamp goes through
``utc_now()``. Wire timestamps are ISO 8601 with a ``Z`` suffix.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current time as a naive UTC datetime, comparable with stored values."""
    return datetime.now(UTC).replace(tzinfo=None)


def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds to a naive UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=UTC).replace(tzinfo=None)


def isoformat_z(value: datetime) -> str:
    """Format as ISO 8601 with millisecond precision and a Z suffix."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_iso(value: str) -> datetime | None:
    """
    Parse an ISO 8601 timestamp into a naive UTC datetime.

    Returns None for anything unparseable; callers treat that as "unknown".
    """
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed
