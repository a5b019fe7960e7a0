"""
Unit tests for DayClock.

Run: pytest tests/unit/test_clock.py -v
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from recallkit.clock import DayClock

UTC = ZoneInfo("UTC")


class TestCalendarDay:
    """Test conversion of instants into local calendar days."""

    def test_midnight_separates_days(self):
        """23:59 and 00:01 are two minutes apart but on different days."""
        clock = DayClock(UTC)
        late = datetime(2026, 3, 2, 23, 59, tzinfo=UTC)
        early = datetime(2026, 3, 3, 0, 1, tzinfo=UTC)

        assert clock.calendar_day(late) == date(2026, 3, 2)
        assert clock.calendar_day(early) == date(2026, 3, 3)

    def test_converts_into_clock_zone(self):
        clock = DayClock(ZoneInfo("America/New_York"))
        # 02:00 UTC is still the previous evening in New York
        ts = datetime(2026, 3, 3, 2, 0, tzinfo=UTC)

        assert clock.calendar_day(ts) == date(2026, 3, 2)

    def test_naive_timestamp_is_local_wall_time(self):
        clock = DayClock(ZoneInfo("Asia/Tokyo"))

        assert clock.calendar_day(datetime(2026, 3, 2, 23, 30)) == date(2026, 3, 2)


class TestFromName:
    def test_named_zone(self):
        clock = DayClock.from_name("Europe/Berlin")

        assert clock.tz == ZoneInfo("Europe/Berlin")

    def test_none_uses_system_zone(self):
        assert DayClock.from_name(None).tz is None


class TestNow:
    def test_now_is_aware(self):
        assert DayClock(UTC).now().tzinfo is not None
        assert DayClock().now().tzinfo is not None

