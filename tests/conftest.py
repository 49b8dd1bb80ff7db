"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from recall_coach.clock import FixedClock  # noqa: E402
from recall_coach.config import Settings  # noqa: E402
from recall_coach.scheduler import SchedulerConfig, SpacedRepetitionScheduler  # noqa: E402
from recall_coach.state_store import StateStore  # noqa: E402
from recall_coach.tutor import ReviewCoach  # noqa: E402
from recall_coach.weekly_report import WeeklyAggregator  # noqa: E402

# Monday 08:00 UTC
START = datetime(2026, 1, 5, 8, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (real files, full service)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
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
    """A clock pinned to Monday 2026-01-05 08:00 UTC."""
    return FixedClock(START)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "review_db.json"


@pytest.fixture
def store(db_path, clock):
    return StateStore(db_path, clock=clock)


@pytest.fixture
def scheduler(store, clock):
    return SpacedRepetitionScheduler(store, SchedulerConfig(), clock=clock)


@pytest.fixture
def aggregator(store, clock):
    return WeeklyAggregator(store, clock=clock)


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, data_dir=tmp_path)


@pytest.fixture
def coach(settings, store, scheduler, aggregator, clock):
    return ReviewCoach(settings, store, scheduler, aggregator, clock=clock)


@pytest.fixture
def sample_extracted():
    """Items as the extraction collaborator returns them."""
    return [
        {
            "topic": "Quantum",
            "question": "What is superposition?",
            "expectedAnswer": "A state that is a combination of basis states",
            "difficulty": 3,
            "tags": ["physics", "quantum"],
        },
        {
            "topic": "Closures",
            "question": "What does a closure capture?",
            "expectedAnswer": "Variables from the enclosing scope",
            "tags": ["python"],
        },
    ]
