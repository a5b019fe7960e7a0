"""
Unit tests for export, import and backups.

Tests:
- Export then import reproduces the ledger exactly
- An invalid snapshot is rejected as a whole and nothing is written
- Snapshots from older schema versions are migrated on import

Run: pytest tests/unit/test_transfer.py -v
"""

import json
import time

import pytest

from recallkit.errors import InvalidSnapshot, UnknownSchemaVersion
from recallkit.migrations import CURRENT_SCHEMA_VERSION
from recallkit.scheduler import RatingEvent
from recallkit.state_store import ProgressStore
from recallkit.transfer import BACKUP_PREFIX, EXPORT_FORMAT, LedgerTransfer


def valid_item(item_id="module1/warmup_1/v1", course_id="go", **overrides):
    item = {
        "itemId": item_id,
        "courseId": course_id,
        "easeFactor": 2.6,
        "intervalDays": 1,
        "repetitions": 1,
        "dueDate": "2026-03-03",
        "lastReviewedAt": "2026-03-02T12:00:00+00:00",
        "lapseCount": 0,
    }
    item.update(overrides)
    return item


def snapshot(items=None, course_id="go", activity=None, version=CURRENT_SCHEMA_VERSION):
    items = items if items is not None else [valid_item()]
    return {
        "format": EXPORT_FORMAT,
        "schemaVersion": version,
        "courses": {
            course_id: {
                "items": {i["itemId"]: i for i in items},
                "activity": activity if activity is not None else {"2026-03-02": len(items)},
            }
        },
    }


@pytest.fixture
def transfer(store):
    return LedgerTransfer(store)


# =============================================================================
# Round Trip
# =============================================================================


class TestRoundTrip:
    def test_empty_ledger(self, transfer, tmp_path):
        exported = transfer.export_json()

        with ProgressStore(tmp_path / "other.db") as other:
            result = LedgerTransfer(other).import_snapshot(exported)
            assert other.snapshot() == transfer.store.snapshot()

        assert result.items == 0
        assert json.loads(exported) == {
            "format": EXPORT_FORMAT,
            "schemaVersion": CURRENT_SCHEMA_VERSION,
            "courses": {},
        }

    def test_after_reviews(self, scheduler, transfer, at, tmp_path):
        ratings = ["recalled", "struggled", "peeked", "recalled", "recalled"]
        for day, rating in enumerate(ratings, start=2):
            scheduler.record_review(RatingEvent("go", "module1/warmup_1/v1", rating, at(2026, 3, day)))
            scheduler.record_review(RatingEvent("go", "module2/card/c1", "recalled", at(2026, 3, day, 21)))
        scheduler.record_review(RatingEvent("rust", "module1/card/a", "struggled", at(2026, 3, 9)))

        exported = transfer.export_json()

        with ProgressStore(tmp_path / "other.db") as other:
            LedgerTransfer(other).import_snapshot(exported)
            assert other.snapshot() == transfer.store.snapshot()
            assert LedgerTransfer(other).export_json() == exported

    def test_export_single_course(self, scheduler, transfer, at):
        scheduler.record_review(RatingEvent("go", "a", "recalled", at(2026, 3, 2)))
        scheduler.record_review(RatingEvent("rust", "b", "recalled", at(2026, 3, 2)))

        exported = transfer.export_ledger("rust")

        assert list(exported["courses"]) == ["rust"]


# =============================================================================
# Validation
# =============================================================================


class TestInvalidSnapshots:
    """An invalid snapshot is rejected and the store is left unchanged."""

    @pytest.fixture
    def seeded(self, scheduler, transfer, at):
        scheduler.record_review(RatingEvent("go", "module1/warmup_1/v1", "recalled", at(2026, 3, 2)))
        return transfer.store.snapshot()

    def test_ease_below_floor(self, transfer, seeded):
        bad = snapshot([valid_item(), valid_item("module1/warmup_1/v2", easeFactor=1.0)])

        with pytest.raises(InvalidSnapshot) as exc_info:
            transfer.import_snapshot(bad)

        assert "easeFactor" in str(exc_info.value)
        assert transfer.store.snapshot() == seeded

    @pytest.mark.parametrize(
        "overrides",
        [
            {"intervalDays": -1},
            {"repetitions": 2, "intervalDays": 0},
            {"lapseCount": -1},
            {"dueDate": "tomorrow"},
            {"easeFactor": float("nan")},
            {"unexpected": True},
        ],
    )
    def test_item_invariants(self, transfer, seeded, overrides):
        with pytest.raises(InvalidSnapshot):
            transfer.import_snapshot(snapshot([valid_item(**overrides)]))

        assert transfer.store.snapshot() == seeded

    def test_mismatched_item_key(self, transfer, seeded):
        bad = snapshot()
        bad["courses"]["go"]["items"] = {"other-id": valid_item()}

        with pytest.raises(InvalidSnapshot):
            transfer.import_snapshot(bad)

    def test_mismatched_course(self, transfer, seeded):
        with pytest.raises(InvalidSnapshot):
            transfer.import_snapshot(snapshot([valid_item(course_id="rust")], course_id="go"))

    def test_non_positive_activity(self, transfer, seeded):
        with pytest.raises(InvalidSnapshot):
            transfer.import_snapshot(snapshot(activity={"2026-03-02": 0}))

    def test_future_version(self, transfer, seeded):
        with pytest.raises(UnknownSchemaVersion):
            transfer.import_snapshot(snapshot(version=CURRENT_SCHEMA_VERSION + 1))

        assert transfer.store.snapshot() == seeded

    def test_malformed_json(self, transfer, seeded):
        with pytest.raises(InvalidSnapshot):
            transfer.import_snapshot('{"schemaVersion": 3, "courses": ')

        assert transfer.store.snapshot() == seeded

    def test_foreign_format(self, transfer, seeded):
        payload = snapshot()
        payload["format"] = "anki-deck"

        with pytest.raises(InvalidSnapshot):
            transfer.import_snapshot(payload)

    def test_missing_file(self, transfer, tmp_path):
        with pytest.raises(InvalidSnapshot):
            transfer.import_file(tmp_path / "missing.json")


# =============================================================================
# Import Scope
# =============================================================================


class TestImportScope:
    def test_import_keeps_other_courses(self, scheduler, transfer, at):
        scheduler.record_review(RatingEvent("rust", "b", "recalled", at(2026, 3, 2)))

        result = transfer.import_snapshot(snapshot())

        assert sorted(transfer.store.course_ids()) == ["go", "rust"]
        assert result.courses == ["go"]
        assert result.items == 1
        assert result.active_days == 1
        assert result.dropped_courses == []

    def test_replace_all_drops_other_courses(self, scheduler, transfer, at):
        scheduler.record_review(RatingEvent("rust", "b", "recalled", at(2026, 3, 2)))

        result = transfer.import_snapshot(snapshot(), replace_all=True)

        assert transfer.store.course_ids() == ["go"]
        assert result.dropped_courses == ["rust"]

    def test_older_version_migrated(self, transfer):
        v1 = {
            "schemaVersion": 1,
            "courses": {
                "go": {
                    "items": {
                        "a": {
                            "ease": 2.5,
                            "interval": 6,
                            "reps": 2,
                            "due": "2026-03-08",
                            "lastReview": "2026-03-02T08:00:00+00:00",
                        }
                    },
                    "activity": ["2026-03-01", "2026-03-02"],
                }
            },
        }

        result = transfer.import_snapshot(json.dumps(v1))

        assert result.schema_version == CURRENT_SCHEMA_VERSION
        assert transfer.store.get_item("go", "a").interval_days == 6
        assert len(transfer.store.load("go").activity) == 2


# =============================================================================
# Backups
# =============================================================================


class TestBackups:
    def test_write_and_list(self, scheduler, transfer, at, tmp_path):
        backup_dir = tmp_path / "backups"
        scheduler.record_review(RatingEvent("go", "a", "recalled", at(2026, 3, 2)))

        first = transfer.write_backup(backup_dir)
        time.sleep(0.01)
        second = transfer.write_backup(backup_dir, course_id="go")

        assert first.name.startswith(BACKUP_PREFIX)
        assert LedgerTransfer.list_backups(backup_dir) == [second, first]
        assert json.loads(second.read_text(encoding="utf-8"))["courses"]["go"]["items"]["a"]

    def test_backup_restores(self, scheduler, transfer, at, tmp_path):
        scheduler.record_review(RatingEvent("go", "a", "recalled", at(2026, 3, 2)))
        before = transfer.store.snapshot()
        backup = transfer.write_backup(tmp_path / "backups")

        transfer.store.clear("go")
        transfer.import_file(backup)

        assert transfer.store.snapshot() == before

    def test_list_missing_dir(self, tmp_path):
        assert LedgerTransfer.list_backups(tmp_path / "none") == []


class TestMalformedLegacySnapshots:
    """Older snapshots with the wrong nesting are rejected wholesale."""

    @pytest.mark.parametrize(
        "payload",
        [
            '{"schemaVersion": 1, "courses": []}',
            '{"schemaVersion": 2, "courses": {"go": []}}',
            '{"courses": {"go": {"items": {"a": 5}}}}',
        ],
    )
    def test_rejected_without_writing(self, scheduler, transfer, at, payload):
        scheduler.record_review(RatingEvent("go", "a", "recalled", at(2026, 3, 2)))
        before = transfer.store.snapshot()

        with pytest.raises(InvalidSnapshot):
            transfer.import_snapshot(payload)

        assert transfer.store.snapshot() == before


class TestImportBackup:
    """The pre-import backup is written only for a snapshot that validates."""

    def test_backup_written_after_validation(self, scheduler, transfer, at, tmp_path):
        backup_dir = tmp_path / "backups"
        scheduler.record_review(RatingEvent("go", "a", "recalled", at(2026, 3, 2)))

        transfer.import_snapshot(snapshot(), backup_dir=backup_dir)

        backups = LedgerTransfer.list_backups(backup_dir)
        assert len(backups) == 1
        assert "a" in json.loads(backups[0].read_text(encoding="utf-8"))["courses"]["go"]["items"]

    @pytest.mark.parametrize(
        "payload",
        [
            snapshot([valid_item(easeFactor=1.0)]),
            snapshot(version=CURRENT_SCHEMA_VERSION + 1),
            "{broken",
        ],
    )
    def test_no_backup_for_rejected_snapshot(self, transfer, tmp_path, payload):
        backup_dir = tmp_path / "backups"

        with pytest.raises((InvalidSnapshot, UnknownSchemaVersion)):
            transfer.import_snapshot(payload, backup_dir=backup_dir)

        assert LedgerTransfer.list_backups(backup_dir) == []
