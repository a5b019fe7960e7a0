"""
SM-2 Spaced Repetition Scheduler with Interleaving.

Implements:
- SM-2-derived transition for per-item review intervals
- Transactional recording of rating events (item state + activity log)
- Due-item queries and study sessions by module or shuffled across modules

Rating Scale:
peeked    - Looked at the answer; full lapse
struggled - Recalled with difficulty; counts as progress but lowers ease
recalled  - Recalled cleanly; raises ease
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from loguru import logger

from .catalog import CatalogItem, CourseCatalog
from .clock import DayClock
from .errors import InvalidRating
from .models import CourseProgress, ReviewItem
from .state_store import ProgressStore

# =============================================================================
# Ratings
# =============================================================================


class Rating(str, Enum):
    """Self-assessed outcome of one review."""

    PEEKED = "peeked"
    STRUGGLED = "struggled"
    RECALLED = "recalled"

    @classmethod
    def parse(cls, value: object) -> Rating:
        """
        Coerce user input into a Rating.

        Accepts a Rating, its value ("recalled"), its name ("RECALLED")
        or the first letter ("r"), case-insensitively.

        Raises:
            InvalidRating: value is none of the three ratings
        """
        if isinstance(value, Rating):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for rating in cls:
                if key in (rating.value, rating.value[0]):
                    return rating
        raise InvalidRating(value)

    @property
    def is_lapse(self) -> bool:
        return self is Rating.PEEKED


def rating_from_response(
    is_correct: bool,
    response_ms: int,
    expected_ms: int = 10000,
) -> Rating:
    """
    Convert an answered exercise into a rating.

    Args:
        is_correct: Whether the answer was correct
        response_ms: Time taken to respond
        expected_ms: Expected response time

    Returns:
        PEEKED when wrong, STRUGGLED when right but slow, RECALLED otherwise
    """
    if not is_correct:
        return Rating.PEEKED
    if response_ms > expected_ms:
        return Rating.STRUGGLED
    return Rating.RECALLED


# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for the SM-2 transition."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    recalled_bonus: float = 0.10
    struggled_penalty: float = 0.15
    lapse_penalty: float = 0.20
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review


class SM2Scheduler:
    """
    SM-2-derived state transition for a single item.

    Pure: the result depends only on the prior state, the rating, the
    review instant and the fixed configuration. Calling it twice for the
    same event compounds, so callers record each real review once.
    """

    def __init__(self, config: SM2Config | None = None, clock: DayClock | None = None):
        """
        Args:
            config: Custom configuration (uses defaults if None)
            clock: Day boundary provider (system local time if None)
        """
        self.config = config or SM2Config()
        self.clock = clock or DayClock()

    def review(
        self,
        item: ReviewItem | None,
        rating: Rating | str,
        now: datetime,
        *,
        course_id: str | None = None,
        item_id: str | None = None,
    ) -> ReviewItem:
        """
        Compute an item's next state after a rating.

        Args:
            item: Current state, or None for a never-reviewed item
            rating: The review outcome
            now: Instant of the review
            course_id: Course of a never-reviewed item (ignored otherwise)
            item_id: Id of a never-reviewed item (ignored otherwise)

        Returns:
            New ReviewItem with updated ease, interval and due date

        Raises:
            InvalidRating: rating is not one of the three ratings
        """
        rating = Rating.parse(rating)
        cfg = self.config

        if item is None:
            if not course_id or not item_id:
                raise ValueError("course_id and item_id are required for a new item")
            ease, interval, repetitions, lapses = cfg.initial_easiness, 0, 0, 0
        else:
            course_id, item_id = item.course_id, item.item_id
            ease = item.ease_factor
            interval = item.interval_days
            repetitions = item.repetitions
            lapses = item.lapse_count

        if rating.is_lapse:
            # Failed - reset to beginning
            repetitions = 0
            interval = cfg.first_interval
            lapses += 1
            ease = self._adjust_ease(ease, -cfg.lapse_penalty)
        else:
            # Passed - advance
            repetitions += 1
            delta = cfg.recalled_bonus if rating is Rating.RECALLED else -cfg.struggled_penalty
            ease = self._adjust_ease(ease, delta)

            if repetitions == 1:
                interval = cfg.first_interval
            elif repetitions == 2:
                interval = cfg.second_interval
            else:
                # Half-up, so 12.5 days becomes 13
                interval = max(1, math.floor(interval * ease + 0.5))

        return ReviewItem(
            item_id=item_id,
            course_id=course_id,
            ease_factor=ease,
            interval_days=interval,
            repetitions=repetitions,
            due_date=self.clock.calendar_day(now) + timedelta(days=interval),
            last_reviewed_at=now,
            lapse_count=lapses,
        )

    def _adjust_ease(self, ease: float, delta: float) -> float:
        # Two decimals keeps repeated +/- steps free of float drift.
        return round(max(self.config.minimum_easiness, ease + delta), 2)


# =============================================================================
# Rating Events
# =============================================================================


@dataclass(frozen=True)
class RatingEvent:
    """One user rating as delivered by the UI layer."""

    course_id: str
    item_id: str
    rating: Rating | str
    timestamp: datetime


# =============================================================================
# Study Scheduler
# =============================================================================


@dataclass
class InterleaveConfig:
    """Configuration for study sessions."""

    new_items_per_session: int = 20
    max_due_items: int = 100
    max_consecutive_same_module: int = 2
    max_consecutive_same_kind: int = 3


@dataclass
class StudySession:
    """A prepared study session."""

    due_items: list[CatalogItem] = field(default_factory=list)
    new_items: list[CatalogItem] = field(default_factory=list)
    queue: list[CatalogItem] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return len(self.queue)

    @property
    def estimated_minutes(self) -> int:
        """Estimate study time (30 sec per item average)."""
        return max(1, self.total_items // 2)


class StudyScheduler:
    """
    Records reviews and answers due-item queries for one progress store.

    Key principles:
    1. A rating is validated before anything is written
    2. Item state and the day's activity count change in one store write
    3. Due items come first in a session; new items fill the remaining quota
    4. Shuffled sessions avoid long runs from the same module
    """

    def __init__(
        self,
        store: ProgressStore,
        clock: DayClock | None = None,
        sm2: SM2Scheduler | None = None,
        config: InterleaveConfig | None = None,
        rng: random.Random | None = None,
    ):
        """
        Args:
            store: ProgressStore holding the ledger
            clock: Day boundary provider (shared with the SM-2 transition)
            sm2: SM2Scheduler (creates default if None)
            config: Session configuration
            rng: Random source for shuffled sessions
        """
        self.store = store
        self.clock = clock or DayClock()
        self.sm2 = sm2 or SM2Scheduler(clock=self.clock)
        self.config = config or InterleaveConfig()
        self.rng = rng or random.Random()

    def record_review(self, event: RatingEvent) -> ReviewItem:
        """
        Record a rating and update scheduling state.

        Args:
            event: The rating event

        Returns:
            Updated ReviewItem

        Raises:
            InvalidRating: rating is malformed (nothing is written)
            StoreWriteFailure: the durable write failed (nothing is recorded)
        """
        rating = Rating.parse(event.rating)
        day = self.clock.calendar_day(event.timestamp)

        def apply(course: CourseProgress) -> ReviewItem:
            updated = self.sm2.review(
                course.items.get(event.item_id),
                rating,
                event.timestamp,
                course_id=event.course_id,
                item_id=event.item_id,
            )
            course.items[event.item_id] = updated
            course.record_activity(day)
            return updated

        new_state = self.store.save(event.course_id, apply)

        logger.debug(
            f"Recorded review for {event.course_id}/{event.item_id}: rating={rating.value}, "
            f"due={new_state.due_date}, interval={new_state.interval_days}d"
        )
        return new_state

    def due_items(
        self,
        course_id: str,
        now: datetime,
        catalog_ids: list[str] | None = None,
    ) -> list[str]:
        """
        Get item ids that are reviewable now.

        Args:
            course_id: The course to query
            now: Current instant
            catalog_ids: Catalog ids; never-reviewed ones are appended

        Returns:
            Stored items due today or earlier (store order), then
            never-reviewed catalog items (catalog order)
        """
        day = self.clock.calendar_day(now)
        course = self.store.load(course_id)

        result = [iid for iid, item in course.items.items() if item.is_due(day)]
        if catalog_ids:
            seen = set(result)
            for iid in catalog_ids:
                if iid not in course.items and iid not in seen:
                    seen.add(iid)
                    result.append(iid)
        return result

    def build_session(
        self,
        catalog: CourseCatalog,
        now: datetime,
        module_id: int | None = None,
        shuffle: bool = False,
    ) -> StudySession:
        """
        Build a study session for the current day.

        Args:
            catalog: Loaded catalog of the course
            now: Current instant
            module_id: Study one module only (None = all modules)
            shuffle: Interleave across modules instead of catalog order

        Returns:
            StudySession with the ordered queue
        """
        day = self.clock.calendar_day(now)
        course = self.store.load(catalog.course_id)
        scope = catalog.get_by_ids(catalog.item_ids(module_id))
        session = StudySession()

        # 1. Due items, most overdue first
        due = [c for c in scope if c.item_id in course.items and course.items[c.item_id].is_due(day)]
        due.sort(key=lambda c: course.items[c.item_id].due_date)
        session.due_items = due[: self.config.max_due_items]

        logger.debug(f"Found {len(session.due_items)} due items")

        # 2. New items fill the remaining quota
        max_new = max(0, self.config.new_items_per_session - len(session.due_items))
        session.new_items = [c for c in scope if c.item_id not in course.items][:max_new]

        # 3. Order the queue
        if shuffle:
            session.queue = self._interleave(session.due_items, session.new_items)
        else:
            session.queue = session.due_items + session.new_items

        logger.info(
            f"Session built: {len(session.due_items)} due + "
            f"{len(session.new_items)} new = {session.total_items} items "
            f"(~{session.estimated_minutes} min)"
        )
        return session

    def _interleave(
        self,
        due: list[CatalogItem],
        new: list[CatalogItem],
    ) -> list[CatalogItem]:
        """
        Shuffle due and new items across modules.

        Strategy:
        - Shuffle each pool
        - Merge 2 due : 1 new so reviews stay ahead of new material
        - Re-order to break runs from the same module or kind
        """
        due_queue = due.copy()
        self.rng.shuffle(due_queue)
        new_queue = new.copy()
        self.rng.shuffle(new_queue)

        result: list[CatalogItem] = []
        while due_queue or new_queue:
            for _ in range(2):
                if due_queue:
                    result.append(due_queue.pop(0))
            if new_queue:
                result.append(new_queue.pop(0))

        return self._apply_interleave_constraints(result)

    def _apply_interleave_constraints(self, queue: list[CatalogItem]) -> list[CatalogItem]:
        if len(queue) <= 1:
            return queue

        result: list[CatalogItem] = []
        remaining = queue.copy()

        while remaining:
            for i, item in enumerate(remaining):
                if self._can_add(result, item):
                    result.append(remaining.pop(i))
                    break
            else:
                # No valid option - just add the first one
                result.append(remaining.pop(0))

        return result

    def _can_add(self, queue: list[CatalogItem], item: CatalogItem) -> bool:
        """Check if item can be added without extending a same-module or same-kind run."""
        n_module = self.config.max_consecutive_same_module
        recent_modules = [c.module_id for c in queue[-n_module:]]
        if len(recent_modules) >= n_module and all(m == item.module_id for m in recent_modules):
            return False

        n_kind = self.config.max_consecutive_same_kind
        recent_kinds = [c.kind for c in queue[-n_kind:]]
        if len(recent_kinds) >= n_kind and all(k == item.kind for k in recent_kinds):
            return False

        return True
