"""
Data classes for the progress ledger.

These are pure data structures with no I/O. Serialized field names are
camelCase so exported files stay stable across Python refactors.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime

from .migrations import CURRENT_SCHEMA_VERSION


@dataclass(frozen=True)
class ReviewItem:
    """
    Scheduling state for one reviewable item (flashcard or exercise variant).

    Attributes:
        item_id: Stable key, unique within the course
        course_id: Course namespace the item belongs to
        ease_factor: Interval growth multiplier (>= 1.3, starts at 2.5)
        interval_days: Days between the last review and due_date
        repetitions: Consecutive non-lapsing reviews
        due_date: Calendar day the item becomes reviewable again
        last_reviewed_at: Instant of the most recent review (audit only)
        lapse_count: Lifetime number of lapses
    """

    item_id: str
    course_id: str
    ease_factor: float
    interval_days: int
    repetitions: int
    due_date: date
    last_reviewed_at: datetime
    lapse_count: int = 0

    def is_due(self, day: date) -> bool:
        """Check if this item is due on the given calendar day."""
        return self.due_date <= day

    def days_overdue(self, day: date) -> int:
        """Days past the scheduled review date (0 if not yet due)."""
        return max(0, (day - self.due_date).days)

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "courseId": self.course_id,
            "easeFactor": self.ease_factor,
            "intervalDays": self.interval_days,
            "repetitions": self.repetitions,
            "dueDate": self.due_date.isoformat(),
            "lastReviewedAt": self.last_reviewed_at.isoformat(),
            "lapseCount": self.lapse_count,
        }


@dataclass
class CourseProgress:
    """
    One course's slice of the ledger: item states plus the activity log.

    The activity log maps calendar day -> number of ratings that day.
    Days without activity are absent rather than zero.
    """

    items: dict[str, ReviewItem] = field(default_factory=dict)
    activity: dict[date, int] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.items and not self.activity

    def record_activity(self, day: date, count: int = 1) -> int:
        """Add rated-item count for a day and return the new total."""
        self.activity[day] = self.activity.get(day, 0) + count
        return self.activity[day]

    def copy(self) -> CourseProgress:
        """Independent copy (items are immutable, so copying the maps suffices)."""
        return CourseProgress(items=dict(self.items), activity=dict(self.activity))

    def to_dict(self) -> dict:
        return {
            "items": {item_id: item.to_dict() for item_id, item in self.items.items()},
            "activity": {day.isoformat(): n for day, n in sorted(self.activity.items())},
        }


@dataclass
class ProgressLedger:
    """Top-level persisted aggregate: every course's progress plus the schema version."""

    schema_version: int = CURRENT_SCHEMA_VERSION
    courses: dict[str, CourseProgress] = field(default_factory=dict)

    def copy(self) -> ProgressLedger:
        return replace(
            self,
            courses={cid: course.copy() for cid, course in self.courses.items()},
        )

    def to_dict(self) -> dict:
        return {
            "schemaVersion": self.schema_version,
            "courses": {cid: course.to_dict() for cid, course in self.courses.items()},
        }
