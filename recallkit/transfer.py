"""
Import/Export of the progress ledger.

Exports are self-describing JSON snapshots carrying the schema version.
Imports accept a snapshot from any known schema version, migrate it,
validate every record, and only then replace the targeted courses in a
single store transaction. Nothing is written for an invalid snapshot.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from .errors import InvalidSnapshot
from .schema import parse_ledger
from .state_store import ProgressStore

EXPORT_FORMAT = "recallkit-progress"
BACKUP_PREFIX = "progress_backup_"


@dataclass
class ImportResult:
    """Summary of a completed import."""

    schema_version: int
    courses: list[str] = field(default_factory=list)
    items: int = 0
    active_days: int = 0
    dropped_courses: list[str] = field(default_factory=list)


class LedgerTransfer:
    """Backup, restore and file export for a ProgressStore."""

    def __init__(self, store: ProgressStore):
        self.store = store

    # =========================================================================
    # Export
    # =========================================================================

    def export_ledger(self, course_id: str | None = None) -> dict:
        """
        Snapshot the ledger (or one course of it) as a plain dict.

        Args:
            course_id: Export only this course (None = all courses)
        """
        ledger = self.store.snapshot()
        if course_id is not None:
            ledger.courses = {
                cid: course for cid, course in ledger.courses.items() if cid == course_id
            }
        return {"format": EXPORT_FORMAT, **ledger.to_dict()}

    def export_json(self, course_id: str | None = None, indent: int | None = 2) -> str:
        return json.dumps(self.export_ledger(course_id), indent=indent, ensure_ascii=False)

    # =========================================================================
    # Import
    # =========================================================================

    def import_snapshot(
        self,
        payload: str | bytes | dict[str, Any],
        replace_all: bool = False,
        backup_dir: Path | None = None,
    ) -> ImportResult:
        """
        Validate a snapshot and install its courses.

        Args:
            payload: JSON text or an already-decoded dict
            replace_all: Also clear courses that are not in the snapshot
            backup_dir: Back up the current ledger here once the snapshot
                has passed validation (None = no backup)

        Returns:
            ImportResult describing what was replaced

        Raises:
            UnknownSchemaVersion: snapshot is from a newer format
            InvalidSnapshot: malformed JSON or any invariant violation
        """
        if isinstance(payload, (str, bytes)):
            try:
                raw = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InvalidSnapshot(f"Snapshot is not valid JSON: {e}") from e
        else:
            raw = payload

        if isinstance(raw, dict) and raw.get("format", EXPORT_FORMAT) != EXPORT_FORMAT:
            raise InvalidSnapshot(f"Unrecognized snapshot format: {raw.get('format')!r}")

        ledger = parse_ledger(raw)

        if backup_dir is not None:
            self.write_backup(backup_dir)

        existing = set(self.store.course_ids())
        self.store.replace_courses(ledger.courses, drop_others=replace_all)

        result = ImportResult(
            schema_version=ledger.schema_version,
            courses=list(ledger.courses),
            items=sum(len(c.items) for c in ledger.courses.values()),
            active_days=sum(len(c.activity) for c in ledger.courses.values()),
            dropped_courses=sorted(existing - set(ledger.courses)) if replace_all else [],
        )
        logger.info(
            f"Imported {result.items} items across {len(result.courses)} course(s)"
            + (f", dropped {len(result.dropped_courses)}" if result.dropped_courses else "")
        )
        return result

    def import_file(
        self,
        path: Path,
        replace_all: bool = False,
        backup_dir: Path | None = None,
    ) -> ImportResult:
        try:
            payload = Path(path).read_bytes()
        except OSError as e:
            raise InvalidSnapshot(f"Cannot read snapshot {path}: {e}") from e
        return self.import_snapshot(payload, replace_all=replace_all, backup_dir=backup_dir)

    # =========================================================================
    # Backups
    # =========================================================================

    def write_backup(self, backup_dir: Path, course_id: str | None = None) -> Path:
        """
        Write a timestamped backup file.

        Args:
            backup_dir: Directory for backup files (created if missing)
            course_id: Back up only this course (None = all courses)

        Returns:
            Path of the backup written
        """
        backup_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_file = backup_dir / f"{BACKUP_PREFIX}{timestamp}.json"
        backup_file.write_text(self.export_json(course_id), encoding="utf-8")
        logger.info(f"Backup saved: {backup_file}")
        return backup_file

    @staticmethod
    def list_backups(backup_dir: Path) -> list[Path]:
        """List available backup files, newest first."""
        if not backup_dir.exists():
            return []
        return sorted(backup_dir.glob(f"{BACKUP_PREFIX}*.json"), reverse=True)
