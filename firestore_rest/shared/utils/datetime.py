"""
UTC datetime utilities.

Timestamps crossing the wire boundary are always timezone-aware UTC.
"""

from datetime import UTC, datetime


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    Normalize a datetime to UTC-aware.

    - None stays None
    - naive datetimes are taken to be UTC already
    - aware datetimes are converted to UTC

    Args:
        dt: A datetime that may be naive or aware

    Returns:
        UTC-aware datetime or None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)

    return dt.astimezone(UTC)
