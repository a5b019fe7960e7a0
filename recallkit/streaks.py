"""
Streak and heatmap statistics derived from the activity log.

Nothing here is persisted. Streaks are recomputed from the per-day counts
every time so they can never drift from the log; the longest run is
memoized on the exact set of active days.

Day rules:
- An active day is any calendar day with at least one rating
- Today without activity does not break the current streak yet
- Any earlier day without activity ends the run
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import lru_cache

from .clock import DayClock
from .state_store import ProgressStore

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StreakSummary:
    """Streak figures for one course as of one calendar day."""

    current: int
    best: int
    today: int
    last_active_day: date | None


@dataclass(frozen=True)
class HeatmapCell:
    day: date
    count: int


@lru_cache(maxsize=128)
def _longest_run(active_days: frozenset[date]) -> int:
    """Length of the longest run of consecutive days."""
    best = 0
    for day in active_days:
        if day - ONE_DAY in active_days:
            continue  # not the start of a run
        length = 1
        while day + timedelta(days=length) in active_days:
            length += 1
        best = max(best, length)
    return best


def compute_streak(activity: Mapping[date, int], today: date) -> StreakSummary:
    """
    Compute streak figures from a sparse activity log.

    Args:
        activity: Calendar day -> rating count (absent days have no activity)
        today: The caller's local calendar day

    Returns:
        StreakSummary with current and best runs and today's count
    """
    active = frozenset(day for day, count in activity.items() if count > 0)

    if today in active:
        cursor = today
    elif today - ONE_DAY in active:
        cursor = today - ONE_DAY
    else:
        cursor = None

    current = 0
    while cursor is not None and cursor in active:
        current += 1
        cursor -= ONE_DAY

    past = [day for day in active if day <= today]
    return StreakSummary(
        current=current,
        best=_longest_run(active),
        today=activity.get(today, 0),
        last_active_day=max(past) if past else None,
    )


def heatmap(
    activity: Mapping[date, int],
    today: date,
    window_days: int,
) -> Iterator[HeatmapCell]:
    """
    Per-day counts for the trailing window ending today, oldest first.

    Days missing from the log are yielded with a count of zero. The
    iterator yields exactly window_days cells.
    """
    if window_days < 1:
        raise ValueError(f"window_days must be >= 1, got {window_days}")
    start = today - timedelta(days=window_days - 1)
    for offset in range(window_days):
        day = start + timedelta(days=offset)
        yield HeatmapCell(day=day, count=activity.get(day, 0))


class StreakAggregator:
    """Dashboard queries over a course's activity log."""

    def __init__(
        self,
        store: ProgressStore,
        clock: DayClock | None = None,
        default_window: int = 84,
    ):
        self.store = store
        self.clock = clock or DayClock()
        self.default_window = default_window

    def streak(self, course_id: str, now: datetime) -> StreakSummary:
        activity = self.store.load(course_id).activity
        return compute_streak(activity, self.clock.calendar_day(now))

    def heatmap(
        self,
        course_id: str,
        now: datetime,
        window_days: int | None = None,
    ) -> list[HeatmapCell]:
        """Materialized heatmap; see heatmap() for the cell rules."""
        activity = self.store.load(course_id).activity
        window = window_days if window_days is not None else self.default_window
        return list(heatmap(activity, self.clock.calendar_day(now), window))
