"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.recall.progress import ProgressRecord  # noqa: E402
from src.recall.scheduler import AdaptiveScheduler  # noqa: E402
from src.recall.store import InMemoryProgressStore  # noqa: E402

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """Fixed reference time."""
    return NOW


@pytest.fixture
def scheduler():
    """Scheduler with default configuration."""
    return AdaptiveScheduler()


@pytest.fixture
def store():
    """Empty in-memory progress store."""
    return InMemoryProgressStore()


@pytest.fixture
def fresh_record():
    """Record of an item opened for the first time."""
    return ProgressRecord.new("card-001", NOW)


@pytest.fixture
def make_record():
    """Factory for records due a given number of days from NOW."""

    def _make(item_id: str, due_in_days: float, level: int = 0, **fields) -> ProgressRecord:
        return ProgressRecord(
            item_id=item_id,
            level=level,
            interval_days=fields.pop("interval_days", 1),
            last_attempt_at=NOW - timedelta(days=1),
            next_review_at=NOW + timedelta(days=due_in_days),
            **fields,
        )

    return _make
