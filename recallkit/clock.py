"""
Day boundary provider.

Due dates and streaks are counted in local calendar days, not elapsed
hours: a review at 23:59 and one at 00:01 fall on different days.
"""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo


class DayClock:
    """
    Converts instants into the user's local calendar day.

    Args:
        tz: Timezone for day boundaries. None uses the system local zone.
    """

    def __init__(self, tz: tzinfo | None = None):
        self.tz = tz

    @classmethod
    def from_name(cls, name: str | None) -> DayClock:
        """Build a clock from an IANA zone name (None = system local)."""
        return cls(ZoneInfo(name) if name else None)

    def now(self) -> datetime:
        """Current instant as an aware datetime in the clock's zone."""
        return datetime.now(self.tz).astimezone(self.tz)

    def calendar_day(self, ts: datetime) -> date:
        """
        Local calendar day of a timestamp.

        Naive timestamps are taken to already be local wall-clock time.
        """
        if ts.tzinfo is None:
            return ts.date()
        return ts.astimezone(self.tz).date()

    def today(self) -> date:
        return self.calendar_day(self.now())
