"""
SQLite Progress Store for recallkit.

Provides durable, offline persistence for the progress ledger:
- Per-course review item state and activity log, one JSON row per course
- Versioned schema with an ordered migration chain applied on load
- Transactional read-modify-write under SQLite's write lock: a mutation
  starts from the committed row and is visible in memory only
  after its durable write has committed

Database location: ~/.recallkit/progress.db (see Settings.db_path)
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import TypeVar

from loguru import logger

from .errors import InvalidSnapshot, StoreWriteFailure
from .migrations import CURRENT_SCHEMA_VERSION
from .models import CourseProgress, ProgressLedger, ReviewItem
from .schema import parse_ledger

T = TypeVar("T")

MATURE_INTERVAL_DAYS = 21


class ProgressStore:
    """
    Single owner of the progress ledger.

    Every read hands out a copy and every write goes through save(),
    clear() or replace_courses(), all serialized by one re-entrant lock
    within the process and by SQLite's write lock across stores sharing
    the same file. The cached ledger is reloaded when another connection
    has committed since it was read.
    The ledger is loaded lazily on first access and migrated if needed.
    """

    def __init__(self, db_path: Path | None = None):
        """
        Initialize the progress store.

        Args:
            db_path: Custom database path (defaults to Settings.db_path)
        """
        if db_path is None:
            from .config import get_settings

            db_path = get_settings().db_path
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._ledger: ProgressLedger | None = None
        self._seen_data_version: int | None = None
        self._lock = threading.RLock()
        self._init_schema()

        logger.info(f"ProgressStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            # Access is serialized by self._lock, so the connection may cross threads.
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self.conn:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS ledger_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS course_progress (
                    course_id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TIMESTAMP
                )
            """)

    # =========================================================================
    # Loading
    # =========================================================================

    def _data_version(self) -> int:
        """Changes whenever another connection commits to the database."""
        return self.conn.execute("PRAGMA data_version").fetchone()[0]

    def _ensure_loaded(self) -> ProgressLedger:
        version = self._data_version()
        if self._ledger is None or version != self._seen_data_version:
            if self._ledger is not None:
                logger.debug(f"{self.db_path} changed on disk, reloading ledger")
            self._ledger = self._read_ledger()
            self._seen_data_version = version
        return self._ledger

    def _fetch_raw(self, course_ids: Iterable[str] | None = None) -> tuple[int, dict] | None:
        """
        Read the stored schema version and course payloads as a raw ledger.

        Args:
            course_ids: Only these courses (None = every course)

        Returns:
            (stored version, raw ledger dict), or None for an empty database
        """
        row = self.conn.execute(
            "SELECT value FROM ledger_meta WHERE key = 'schema_version'"
        ).fetchone()
        if course_ids is None:
            rows = self.conn.execute(
                "SELECT course_id, payload FROM course_progress ORDER BY rowid"
            ).fetchall()
        else:
            rows = [
                r
                for cid in course_ids
                for r in self.conn.execute(
                    "SELECT course_id, payload FROM course_progress WHERE course_id = ?", (cid,)
                ).fetchall()
            ]

        if row is None and not rows:
            return None

        try:
            version = int(row["value"]) if row is not None else 1
            raw = {
                "schemaVersion": version,
                "courses": {r["course_id"]: json.loads(r["payload"]) for r in rows},
            }
        except (ValueError, TypeError) as e:
            raise InvalidSnapshot(f"Corrupt progress database {self.db_path}: {e}") from e
        return version, raw

    def _read_ledger(self) -> ProgressLedger:
        """
        Read, migrate and validate the persisted ledger.

        Raises:
            UnknownSchemaVersion: database was written by a newer version
            InvalidSnapshot: stored payloads are corrupt or violate invariants
        """
        fetched = self._fetch_raw()
        if fetched is None:
            logger.debug("Empty progress database, starting a new ledger")
            return ProgressLedger()

        version, raw = fetched
        ledger = parse_ledger(raw)

        if version < CURRENT_SCHEMA_VERSION:
            with self._write_lock():
                self._write_courses(ledger.courses)
            logger.info(
                f"Upgraded {self.db_path} from schema v{version} to v{CURRENT_SCHEMA_VERSION}"
            )

        logger.debug(f"Loaded ledger with {len(ledger.courses)} course(s)")
        return ledger

    def _read_courses(self, course_ids: Iterable[str]) -> dict[str, CourseProgress]:
        """Fresh copies of the given courses as currently committed."""
        fetched = self._fetch_raw(list(course_ids))
        if fetched is None:
            return {}
        return parse_ledger(fetched[1]).courses

    def _stored_course_ids(self) -> list[str]:
        rows = self.conn.execute("SELECT course_id FROM course_progress ORDER BY rowid").fetchall()
        return [r["course_id"] for r in rows]

    # =========================================================================
    # Durable Writes
    # =========================================================================

    @contextmanager
    def _write_lock(self) -> Iterator[None]:
        """
        Hold SQLite's write lock for one read-modify-write.

        Other connections to the same file block until commit, so a course
        row re-read inside the block cannot change before it is written back.
        Rolls back if the block raises.

        Raises:
            StoreWriteFailure: the transaction could not start or commit
        """
        try:
            with self.conn:
                self.conn.execute("BEGIN IMMEDIATE")
                yield
        except sqlite3.Error as e:
            logger.error(f"Progress write failed: {e}")
            raise StoreWriteFailure(f"Could not write progress to {self.db_path}: {e}") from e

    def _write_courses(
        self,
        upserts: dict[str, CourseProgress],
        deletes: Iterable[str] = (),
    ) -> None:
        """Write course rows and the schema version (caller holds _write_lock)."""
        now = datetime.now().isoformat()
        for course_id in deletes:
            self.conn.execute(
                "DELETE FROM course_progress WHERE course_id = ?", (course_id,)
            )
        for course_id, course in upserts.items():
            self.conn.execute(
                """
                INSERT INTO course_progress (course_id, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(course_id) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
            """,
                (course_id, json.dumps(course.to_dict()), now),
            )
        self.conn.execute(
            """
            INSERT INTO ledger_meta (key, value) VALUES ('schema_version', ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
            (str(CURRENT_SCHEMA_VERSION),),
        )

    # =========================================================================
    # Course Slice Operations
    # =========================================================================

    def load(self, course_id: str) -> CourseProgress:
        """
        Get a copy of one course's progress.

        Args:
            course_id: The course namespace

        Returns:
            CourseProgress (empty if the course has never been studied)
        """
        with self._lock:
            course = self._ensure_loaded().courses.get(course_id)
            return course.copy() if course is not None else CourseProgress()

    def save(self, course_id: str, mutation: Callable[[CourseProgress], T]) -> T:
        """
        Apply a mutation to one course and persist it atomically.

        The mutation runs on a private copy of the course as currently
        committed, re-read under SQLite's write lock, so writes from another
        store on the same file are never overwritten. If the mutation raises,
        or if the durable write fails, the live ledger is left as it was.

        Args:
            course_id: The course namespace
            mutation: Callable that edits the CourseProgress in place

        Returns:
            Whatever the mutation returns

        Raises:
            StoreWriteFailure: the SQLite write did not complete
        """
        with self._lock:
            ledger = self._ensure_loaded()

            with self._write_lock():
                working = self._read_courses([course_id]).get(course_id, CourseProgress())
                result = mutation(working)
                self._write_courses({course_id: working})

            ledger.courses[course_id] = working
            return result

    def clear(self, course_id: str) -> int:
        """
        Delete one course's progress.

        Args:
            course_id: The course to wipe (other courses are untouched)

        Returns:
            Number of review items removed
        """
        with self._lock:
            ledger = self._ensure_loaded()

            with self._write_lock():
                course = self._read_courses([course_id]).get(course_id)
                if course is not None:
                    self._write_courses({}, deletes=[course_id])

            ledger.courses.pop(course_id, None)
            if course is None:
                return 0

            logger.info(f"Cleared {len(course.items)} items from course {course_id}")
            return len(course.items)

    def replace_courses(
        self,
        courses: dict[str, CourseProgress],
        drop_others: bool = False,
    ) -> None:
        """
        Replace whole course slices in one transaction.

        Args:
            courses: Course slices to install
            drop_others: Also delete every course not in `courses`
        """
        with self._lock:
            ledger = self._ensure_loaded()
            replacement = {cid: course.copy() for cid, course in courses.items()}

            with self._write_lock():
                stored = set(self._stored_course_ids()) | set(ledger.courses)
                deletes = [cid for cid in stored if cid not in courses] if drop_others else []
                self._write_courses(replacement, deletes=deletes)

            for cid in deletes:
                ledger.courses.pop(cid, None)
            ledger.courses.update(replacement)

    def snapshot(self) -> ProgressLedger:
        """Consistent copy of the entire ledger."""
        with self._lock:
            return self._ensure_loaded().copy()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_item(self, course_id: str, item_id: str) -> ReviewItem | None:
        """Get the stored state of one item (None if never reviewed)."""
        with self._lock:
            course = self._ensure_loaded().courses.get(course_id)
            return course.items.get(item_id) if course is not None else None

    def course_ids(self) -> list[str]:
        """Courses with stored progress."""
        with self._lock:
            return list(self._ensure_loaded().courses)

    def count_due(self, course_id: str, day: date) -> int:
        """Count items due on or before the given day."""
        course = self.load(course_id)
        return sum(1 for item in course.items.values() if item.is_due(day))

    def get_stats(self, course_id: str, day: date) -> dict:
        """
        Get overall learning statistics for a course.

        Returns:
            Dictionary with aggregate stats
        """
        course = self.load(course_id)
        items = list(course.items.values())

        avg_ease = sum(i.ease_factor for i in items) / len(items) if items else 0.0

        return {
            "total_items_tracked": len(items),
            "items_due": sum(1 for i in items if i.is_due(day)),
            "mature_items": sum(1 for i in items if i.interval_days >= MATURE_INTERVAL_DAYS),
            "total_reviews": sum(course.activity.values()),
            "total_lapses": sum(i.lapse_count for i in items),
            "avg_ease_factor": round(avg_ease, 2),
            "active_days": len(course.activity),
        }

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> ProgressStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
