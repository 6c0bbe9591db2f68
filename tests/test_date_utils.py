from datetime import datetime, timedelta, timezone

import pytest

from date_utils import (
    DISPLAY_TZ,
    format_date,
    format_iso,
    format_relative_time,
    to_display_tz,
)
from status_helpers import get_status_display

NOW = datetime(2025, 11, 10, 19, 35, 42)


@pytest.mark.parametrize("delta,expected", [
    (timedelta(seconds=30), "Just now"),
    (timedelta(minutes=1), "1 min ago"),
    (timedelta(minutes=5), "5 mins ago"),
    (timedelta(hours=1, minutes=10), "1 hour ago"),
    (timedelta(hours=5), "5 hours ago"),
    (timedelta(days=1, hours=2), "1 day ago"),
    (timedelta(days=6), "6 days ago"),
])
def test_relative_time(delta, expected):
    assert format_relative_time(NOW - delta, now=NOW) == expected


def test_relative_time_falls_back_to_date():
    old = NOW - timedelta(days=8)
    assert format_relative_time(old, now=NOW) == format_date(old)
    assert format_relative_time(None) == ""


def test_format_iso():
    assert format_iso(NOW.replace(microsecond=1234)) == "2025-11-10T19:35:42Z"
    aware = datetime(2025, 11, 10, 20, 35, 42, tzinfo=timezone(timedelta(hours=1)))
    assert format_iso(aware) == "2025-11-10T19:35:42Z"
    assert format_iso(None) is None


def test_display_timezone_conversion():
    converted = to_display_tz(NOW)
    assert converted.utcoffset() == DISPLAY_TZ.utcoffset(None)
    assert converted.replace(tzinfo=None) == NOW + DISPLAY_TZ.utcoffset(None)
    assert to_display_tz(None) is None


@pytest.mark.parametrize("status,label,badge", [
    ("PENDING", "Pending", "text-bg-warning"),
    ("IN_PROGRESS", "In Progress", "text-bg-primary"),
    ("COMPLETED", "Completed", "text-bg-success"),
])
def test_status_display(status, label, badge):
    display = get_status_display(status)
    assert (display.label, display.badge_class) == (label, badge)


def test_deleted_status_display_wins():
    display = get_status_display("COMPLETED", deleted=True).to_dict()
    assert display["label"] == "Deleted"
    assert display["badge_class"] == "text-bg-secondary"
