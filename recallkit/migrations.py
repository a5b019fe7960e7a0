"""
Schema migrations for the persisted progress ledger.

Each entry in MIGRATIONS upgrades a raw ledger dict from version N to N+1.
Migrations are pure: they never mutate their input and never touch storage.

Version history:
    1 - items keyed ease/interval/reps/due/lastReview, activity stored as a
        list of ISO dates (one entry per rating)
    2 - camelCase item fields with explicit itemId/courseId, lapseCount added
    3 - activity stored as a sparse {isoDate: count} mapping
"""

from __future__ import annotations

import copy
from collections import Counter
from collections.abc import Callable
from typing import Any

from loguru import logger

from .errors import InvalidSnapshot, UnknownSchemaVersion

CURRENT_SCHEMA_VERSION = 3

RawLedger = dict[str, Any]

_V1_ITEM_FIELDS = {
    "ease": "easeFactor",
    "interval": "intervalDays",
    "reps": "repetitions",
    "due": "dueDate",
    "lastReview": "lastReviewedAt",
}


def _v1_to_v2(ledger: RawLedger) -> RawLedger:
    """Rename item fields to camelCase and add lapseCount."""
    out = copy.deepcopy(ledger)
    for course_id, course in out.get("courses", {}).items():
        items = course.get("items", {})
        for item_id, item in list(items.items()):
            migrated = {_V1_ITEM_FIELDS.get(k, k): v for k, v in item.items()}
            migrated.setdefault("itemId", item_id)
            migrated.setdefault("courseId", course_id)
            migrated.setdefault("lapseCount", 0)
            items[item_id] = migrated
    out["schemaVersion"] = 2
    return out


def _v2_to_v3(ledger: RawLedger) -> RawLedger:
    """Collapse the per-rating activity list into per-day counts."""
    out = copy.deepcopy(ledger)
    for course in out.get("courses", {}).values():
        activity = course.get("activity", [])
        if isinstance(activity, list):
            counts = Counter(str(day) for day in activity)
            course["activity"] = {day: counts[day] for day in sorted(counts)}
    out["schemaVersion"] = 3
    return out


MIGRATIONS: dict[int, Callable[[RawLedger], RawLedger]] = {
    1: _v1_to_v2,
    2: _v2_to_v3,
}


def schema_version_of(ledger: RawLedger) -> int:
    """
    Read the schema version of a raw ledger.

    Ledgers written before versioning existed carry no version and are v1.

    Raises:
        InvalidSnapshot: version is not a positive integer
    """
    version = ledger.get("schemaVersion", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise InvalidSnapshot(f"Invalid schemaVersion: {version!r}")
    return version


def migrate_ledger(ledger: RawLedger) -> RawLedger:
    """
    Upgrade a raw ledger to CURRENT_SCHEMA_VERSION.

    Args:
        ledger: Raw ledger dict as read from storage or an export file

    Returns:
        A new dict at the current version (the input is left untouched)

    Raises:
        UnknownSchemaVersion: ledger is from a newer format
        InvalidSnapshot: version field is malformed, or an older ledger
            does not have the shape its version requires
    """
    if not isinstance(ledger, dict):
        raise InvalidSnapshot("Ledger must be a JSON object")

    version = schema_version_of(ledger)
    if version > CURRENT_SCHEMA_VERSION:
        raise UnknownSchemaVersion(version, CURRENT_SCHEMA_VERSION)

    current = ledger
    while version < CURRENT_SCHEMA_VERSION:
        try:
            current = MIGRATIONS[version](current)
        except (AttributeError, TypeError) as e:
            # Steps expect nested objects; any other shape is a malformed ledger
            raise InvalidSnapshot(f"Malformed v{version} ledger: {e}") from e
        logger.info(f"Migrated progress ledger v{version} -> v{version + 1}")
        version += 1

    if current is ledger:
        current = copy.deepcopy(ledger)
        current["schemaVersion"] = CURRENT_SCHEMA_VERSION
    return current
