"""
recallkit: offline spaced-repetition scheduling and progress tracking.

Components:
- DayClock: Local calendar day boundaries
- SM2Scheduler: SM-2-derived review transition
- StudyScheduler: Rating events, due queries and study sessions
- ProgressStore: SQLite persistence with schema migrations
- StreakAggregator: Streaks and activity heatmap
- LedgerTransfer: Export, import and backups
- CourseCatalog: Item ids supplied by course content
"""

from .catalog import CatalogItem, CourseCatalog
from .clock import DayClock
from .errors import (
    InvalidRating,
    InvalidSnapshot,
    RecallkitError,
    StoreWriteFailure,
    UnknownSchemaVersion,
)
from .migrations import CURRENT_SCHEMA_VERSION
from .models import CourseProgress, ProgressLedger, ReviewItem
from .scheduler import (
    InterleaveConfig,
    Rating,
    RatingEvent,
    SM2Config,
    SM2Scheduler,
    StudyScheduler,
    StudySession,
    rating_from_response,
)
from .state_store import ProgressStore
from .streaks import HeatmapCell, StreakAggregator, StreakSummary, compute_streak, heatmap
from .transfer import ImportResult, LedgerTransfer

__version__ = "1.0.0"

__all__ = [
    # Calendar
    "DayClock",
    # Data
    "ReviewItem",
    "CourseProgress",
    "ProgressLedger",
    "CURRENT_SCHEMA_VERSION",
    # Persistence
    "ProgressStore",
    "LedgerTransfer",
    "ImportResult",
    # Scheduling
    "Rating",
    "RatingEvent",
    "SM2Config",
    "SM2Scheduler",
    "StudyScheduler",
    "StudySession",
    "InterleaveConfig",
    "rating_from_response",
    # Statistics
    "StreakAggregator",
    "StreakSummary",
    "HeatmapCell",
    "compute_streak",
    "heatmap",
    # Catalog
    "CatalogItem",
    "CourseCatalog",
    # Errors
    "RecallkitError",
    "InvalidRating",
    "InvalidSnapshot",
    "StoreWriteFailure",
    "UnknownSchemaVersion",
]
