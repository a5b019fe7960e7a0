"""
Unit tests for streaks and the activity heatmap.

Run: pytest tests/unit/test_streaks.py -v
"""

from datetime import date, datetime, timezone

import pytest

from recallkit.streaks import HeatmapCell, StreakAggregator, compute_streak, heatmap

MON, TUE, WED, THU, FRI = (date(2026, 3, d) for d in range(2, 7))


class TestComputeStreak:
    def test_today_without_activity_keeps_streak(self):
        """Mon-Wed active, checked early Thursday: the streak is still alive."""
        summary = compute_streak({MON: 3, TUE: 1, WED: 2}, THU)

        assert summary.current == 3
        assert summary.today == 0
        assert summary.last_active_day == WED

    def test_missed_day_breaks_streak(self):
        summary = compute_streak({MON: 3, TUE: 1, WED: 2}, FRI)

        assert summary.current == 0
        assert summary.best == 3

    def test_today_counts(self):
        summary = compute_streak({TUE: 1, WED: 1, THU: 4}, THU)

        assert summary.current == 3
        assert summary.today == 4

    def test_best_run(self):
        activity = {
            date(2026, 1, 1): 1,
            date(2026, 1, 2): 1,
            date(2026, 1, 3): 1,
            date(2026, 1, 4): 1,
            date(2026, 1, 10): 1,
            WED: 1,
            THU: 1,
        }

        summary = compute_streak(activity, THU)

        assert summary.current == 2
        assert summary.best == 4

    def test_empty_log(self):
        summary = compute_streak({}, THU)

        assert summary.current == 0
        assert summary.best == 0
        assert summary.last_active_day is None

    def test_zero_counts_are_inactive(self):
        summary = compute_streak({WED: 0, THU: 0}, THU)

        assert summary.current == 0
        assert summary.best == 0


class TestHeatmap:
    def test_length_and_zero_fill(self):
        cells = list(heatmap({TUE: 2, THU: 5}, THU, 7))

        assert len(cells) == 7
        assert cells[0] == HeatmapCell(day=date(2026, 2, 27), count=0)
        assert cells[-1] == HeatmapCell(day=THU, count=5)
        assert [c.count for c in cells] == [0, 0, 0, 0, 2, 0, 5]

    def test_days_are_consecutive(self):
        cells = list(heatmap({}, THU, 30))

        assert all((b.day - a.day).days == 1 for a, b in zip(cells, cells[1:]))

    def test_outside_window_ignored(self):
        cells = list(heatmap({date(2025, 1, 1): 9}, THU, 3))

        assert sum(c.count for c in cells) == 0

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            list(heatmap({}, THU, 0))


class TestStreakAggregator:
    def test_reads_activity_from_store(self, store, clock):
        def log(course):
            for day in (MON, TUE, WED):
                course.record_activity(day)

        store.save("go", log)
        aggregator = StreakAggregator(store, clock=clock, default_window=14)
        thursday_early = datetime(2026, 3, 5, 0, 30, tzinfo=timezone.utc)

        assert aggregator.streak("go", thursday_early).current == 3
        assert len(aggregator.heatmap("go", thursday_early)) == 14
        assert len(aggregator.heatmap("go", thursday_early, window_days=3)) == 3

    def test_courses_are_independent(self, store, clock):
        store.save("go", lambda course: course.record_activity(WED))
        aggregator = StreakAggregator(store, clock=clock)

        assert aggregator.streak("rust", datetime(2026, 3, 4, 12, tzinfo=timezone.utc)).current == 0
