"""
Validation models for serialized ledgers.

Every ledger that crosses a trust boundary (the SQLite payloads on load,
an export file on import) is migrated to the current schema and validated
here before it becomes a ProgressLedger. Validation is all-or-nothing.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, model_validator

from .errors import InvalidSnapshot
from .migrations import CURRENT_SCHEMA_VERSION, migrate_ledger
from .models import CourseProgress, ProgressLedger, ReviewItem

MIN_EASE_FACTOR = 1.3


class ReviewItemRecord(BaseModel):
    """Serialized ReviewItem."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    item_id: str = Field(alias="itemId", min_length=1)
    course_id: str = Field(alias="courseId", min_length=1)
    ease_factor: float = Field(alias="easeFactor", ge=MIN_EASE_FACTOR, allow_inf_nan=False)
    interval_days: int = Field(alias="intervalDays", ge=0)
    repetitions: int = Field(ge=0)
    due_date: date = Field(alias="dueDate")
    last_reviewed_at: datetime = Field(alias="lastReviewedAt")
    lapse_count: int = Field(alias="lapseCount", ge=0)

    @model_validator(mode="after")
    def check_interval(self) -> ReviewItemRecord:
        if self.repetitions >= 1 and self.interval_days < 1:
            raise ValueError("intervalDays must be >= 1 once repetitions >= 1")
        return self

    def to_item(self) -> ReviewItem:
        return ReviewItem(
            item_id=self.item_id,
            course_id=self.course_id,
            ease_factor=self.ease_factor,
            interval_days=self.interval_days,
            repetitions=self.repetitions,
            due_date=self.due_date,
            last_reviewed_at=self.last_reviewed_at,
            lapse_count=self.lapse_count,
        )


class CourseRecord(BaseModel):
    """Serialized CourseProgress."""

    model_config = ConfigDict(extra="forbid")

    items: dict[str, ReviewItemRecord] = Field(default_factory=dict)
    activity: dict[date, PositiveInt] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_item_keys(self) -> CourseRecord:
        for key, item in self.items.items():
            if key != item.item_id:
                raise ValueError(f"item key {key!r} does not match itemId {item.item_id!r}")
        return self


class LedgerRecord(BaseModel):
    """Serialized ProgressLedger (extra top-level keys such as 'format' are ignored)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    schema_version: int = Field(alias="schemaVersion")
    courses: dict[str, CourseRecord] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_course_ids(self) -> LedgerRecord:
        if self.schema_version != CURRENT_SCHEMA_VERSION:
            raise ValueError(f"schemaVersion must be {CURRENT_SCHEMA_VERSION} after migration")
        for course_id, course in self.courses.items():
            for item in course.items.values():
                if item.course_id != course_id:
                    raise ValueError(
                        f"item {item.item_id!r} has courseId {item.course_id!r}, "
                        f"stored under course {course_id!r}"
                    )
        return self


def _format_errors(exc: ValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return messages


def parse_ledger(raw: Any) -> ProgressLedger:
    """
    Migrate and validate a raw ledger dict.

    Args:
        raw: Decoded JSON ledger at any known schema version

    Returns:
        ProgressLedger at the current schema version

    Raises:
        UnknownSchemaVersion: ledger is from a newer format
        InvalidSnapshot: shape or invariant violation anywhere in the ledger
    """
    migrated = migrate_ledger(raw)
    try:
        record = LedgerRecord.model_validate(migrated)
    except ValidationError as e:
        raise InvalidSnapshot("Ledger failed validation", _format_errors(e)) from e

    return ProgressLedger(
        schema_version=record.schema_version,
        courses={
            course_id: CourseProgress(
                items={item_id: item.to_item() for item_id, item in course.items.items()},
                activity=dict(course.activity),
            )
            for course_id, course in record.courses.items()
        },
    )
