"""
UTC DateTime Utilities for LegalWatch.

Provides consistent UTC datetime handling across the entire codebase.
All datetimes are stored and handled in UTC with timezone awareness.
"""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    This is the standard function for all timestamps.
    Always returns a datetime with tzinfo=timezone.utc.

    Example:
        from app.core.utc import utc_now

        created_at = utc_now()  # 2025-12-08 03:00:00+00:00
    """
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """
    Get current UTC time as ISO 8601 string with Z suffix.

    Returns format: "2025-12-08T03:00:00.123456Z"
    """
    return utc_now().isoformat().replace("+00:00", "Z")


def utc_today() -> date:
    """Current calendar date in UTC (validity dates, recurrence days)."""
    return utc_now().date()


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC timezone-aware datetime.

    - If naive: assumes UTC and adds timezone
    - If aware: converts to UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
