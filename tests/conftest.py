"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
import yaml

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from recallkit.clock import DayClock  # noqa: E402
from recallkit.config import get_settings  # noqa: E402
from recallkit.scheduler import StudyScheduler  # noqa: E402
from recallkit.state_store import ProgressStore  # noqa: E402

UTC = ZoneInfo("UTC")


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite on disk)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Day clock pinned to UTC so day boundaries are machine independent."""
    return DayClock(UTC)


@pytest.fixture
def at():
    """Build an aware UTC timestamp: at(2026, 3, 2, 9, 30)."""

    def _at(year, month, day, hour=12, minute=0):
        return datetime(year, month, day, hour, minute, tzinfo=UTC)

    return _at


@pytest.fixture
def store(tmp_path):
    """Progress store backed by a temporary SQLite file."""
    s = ProgressStore(tmp_path / "progress.db")
    yield s
    s.close()


@pytest.fixture
def scheduler(store, clock):
    return StudyScheduler(store, clock=clock)


@pytest.fixture
def content_root(tmp_path):
    """
    A course content tree with two exercise modules and one flashcard deck.

    infra-go/content/exercises/module1-variants.yaml: warmup_1 (v1, v2), challenge_1 (v1)
    infra-go/content/exercises/module2-variants.yaml: warmup_1 (v1)
    infra-go/content/flashcards/module2.json: cards c1, c2
    """
    root = tmp_path / "courses"
    exercises = root / "infra-go" / "content" / "exercises"
    flashcards = root / "infra-go" / "content" / "flashcards"
    exercises.mkdir(parents=True)
    flashcards.mkdir(parents=True)

    module1 = {
        "conceptLinks": {"Slices": "#slices"},
        "sharedContent": {},
        "variants": {
            "warmups": [
                {
                    "id": "warmup_1",
                    "concept": "Slices",
                    "variants": [
                        {"id": "v1", "title": "Append", "description": "x", "hints": [], "solution": "y"},
                        {"id": "v2", "title": "Copy", "description": "x", "hints": [], "solution": "y"},
                    ],
                }
            ],
            "challenges": [
                {
                    "id": "challenge_1",
                    "block": 1,
                    "difficulty": 2,
                    "concept": "Maps",
                    "variants": [{"id": "v1", "title": "Count words", "description": "x"}],
                }
            ],
        },
    }
    module2 = {
        "variants": {
            "warmups": [
                {"id": "warmup_1", "concept": "Errors", "variants": [{"id": "v1", "title": "Wrap"}]}
            ],
            "challenges": [],
        }
    }
    (exercises / "module1-variants.yaml").write_text(yaml.safe_dump(module1), encoding="utf-8")
    (exercises / "module2-variants.yaml").write_text(yaml.safe_dump(module2), encoding="utf-8")
    (flashcards / "module2.json").write_text(
        '{"cards": [{"id": "c1", "front": "?", "back": "!"}, {"id": "c2"}]}', encoding="utf-8"
    )
    return root


@pytest.fixture
def cli_env(tmp_path, monkeypatch, content_root):
    """Point the CLI settings at temporary directories."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("RECALLKIT_DATA_DIR", str(data_dir))
    monkeypatch.setenv("RECALLKIT_CONTENT_ROOT", str(content_root))
    monkeypatch.setenv("RECALLKIT_TIMEZONE", "UTC")
    get_settings.cache_clear()
    yield data_dir
    get_settings.cache_clear()
