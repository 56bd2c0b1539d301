"""Shared datetime helpers for the Questrade integration.

Centralises the timestamp handling the client and the sync engine both
need: timezone normalisation and the RFC 3339 strings the activities
endpoint expects in its ``startTime``/``endTime`` parameters.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC).

    If the datetime is naive, attach UTC; otherwise return as-is.

    Args:
        dt: A datetime object.

    Returns:
        The same datetime, guaranteed to be timezone-aware.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def format_rfc3339(dt: datetime) -> str:
    """Format a datetime as an RFC 3339 timestamp with second precision.

    Naive datetimes are assumed to be UTC.  The offset is always written
    out (``+00:00``) rather than abbreviated to ``Z``.

    Args:
        dt: A datetime object.

    Returns:
        A string such as ``"2024-01-15T10:30:00+00:00"``.
    """
    return ensure_utc(dt).isoformat(timespec="seconds")
