"""
Date and Time Utilities for MG Trako
Timestamps are stored as naive UTC; display formatting converts to the
configured plant offset (DISPLAY_UTC_OFFSET hours, default GMT-5).
"""
import os
from datetime import datetime, timezone, timedelta


DISPLAY_OFFSET_HOURS = float(os.environ.get("DISPLAY_UTC_OFFSET", "-5"))
DISPLAY_TZ = timezone(timedelta(hours=DISPLAY_OFFSET_HOURS))


def utcnow():
    """Current time as a naive UTC datetime (our storage standard)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_display_tz(dt):
    """
    Convert a stored datetime to the display timezone

    Args:
        dt: datetime object in UTC (naive or aware)

    Returns:
        datetime object in DISPLAY_TZ, or None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(DISPLAY_TZ)


def format_iso(dt):
    """ISO 8601 UTC string for JSON payloads (e.g. "2025-11-10T19:35:42Z")"""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat(timespec="seconds") + "Z"


def format_date(dt):
    """YYYY-MM-DD in the display timezone"""
    if dt is None:
        return ""
    return to_display_tz(dt).strftime("%Y-%m-%d")


def format_datetime(dt):
    """YYYY-MM-DD HH:MM in the display timezone"""
    if dt is None:
        return ""
    return to_display_tz(dt).strftime("%Y-%m-%d %H:%M")


def format_relative_time(dt, now=None):
    """
    Format datetime as relative time (e.g., "5 mins ago", "2 hours ago")
    Falls back to the absolute date for anything a week or older

    Args:
        dt: datetime object (assumes UTC if naive)
        now: reference time, defaults to utcnow()

    Returns:
        str: Relative time description
    """
    if dt is None:
        return ""

    now = now or utcnow()
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)

    diff_minutes = (now - dt).total_seconds() / 60
    diff_hours = diff_minutes / 60
    diff_days = diff_hours / 24

    if diff_minutes < 1:
        return "Just now"
    elif diff_minutes < 60:
        mins = int(diff_minutes)
        return f"{mins} min{'s' if mins > 1 else ''} ago"
    elif diff_hours < 24:
        hours = int(diff_hours)
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    elif diff_days < 7:
        days = int(diff_days)
        return f"{days} day{'s' if days > 1 else ''} ago"
    return format_date(dt)
