"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.review.content import ExerciseSource  # noqa: E402
from src.review.exercises import LocalExerciseFactory  # noqa: E402
from src.review.models import LearningItem  # noqa: E402
from src.review.state_store import InMemoryStateStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite on disk)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


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
def now():
    """Fixed reference time."""
    return datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_items():
    """Build n catalog items with ids item-01, item-02, ..."""

    def _make(n: int) -> list[LearningItem]:
        return [
            LearningItem(
                id=f"item-{i:02d}",
                term=f"term{i}",
                meaning=f"meaning of term {i}",
                example_sentence=f"A sentence with term{i}.",
            )
            for i in range(1, n + 1)
        ]

    return _make


@pytest.fixture
def catalog(make_items):
    """Twelve distinct learning items."""
    return make_items(12)


@pytest.fixture
def store():
    """Empty in-memory state store."""
    return InMemoryStateStore()


@pytest.fixture
def offline_source(catalog):
    """Exercise source without a provider, seeded for reproducible options."""
    return ExerciseSource(LocalExerciseFactory(catalog, rng=random.Random(7)))
