"""
DateTime utility functions for the application.

All timestamps are stored as naive UTC datetimes.
"""
from datetime import datetime, timezone


def utcnow():
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt):
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value):
    """
    Parse an ISO-8601 timestamp as sent by polling clients.

    Accepts a trailing 'Z' and any UTC offset.

    Args:
        value: ISO string or datetime

    Returns:
        datetime: naive UTC datetime

    Raises:
        ValueError: If the value is not a parseable timestamp
    """
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(text))


def format_timestamp(dt):
    """
    Format a stored timestamp for the wire, e.g. "2025-10-15T14:30:45.123456Z".

    Returns:
        str or None
    """
    if dt is None:
        return None
    return to_naive_utc(dt).isoformat() + "Z"
