"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across unit and integration tests.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import load_dotenv

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file from project root BEFORE any fixtures run
# This ensures POSTGRES_TEST_* variables are available
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from kanji_srs.services.learning.catalog import (  # noqa: E402
    InMemoryItemCatalog,
    Item,
    StudySetInfo,
)
from kanji_srs.services.learning.clock import ReviewClock  # noqa: E402
from kanji_srs.services.learning.intervals import IntervalTable  # noqa: E402
from kanji_srs.services.learning.progress_store import InMemoryProgressStore  # noqa: E402
from kanji_srs.services.learning.scheduler import ReviewScheduler  # noqa: E402
from kanji_srs.services.learning.spaced_rep_service import SpacedRepService  # noqa: E402

# Fixed "now" shared by the scheduling tests
NOW = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

LEARNER = "learner-1"
DECK = "deck-1"


# ============================================================================
# Environment Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None, None, None]:
    """
    Set up test environment variables before any tests run.

    This ensures tests run with predictable configuration, overriding
    any values from .env files to ensure test isolation.
    """
    # Store original environment
    original_env = os.environ.copy()

    test_env = {
        "POSTGRES_HOST": os.environ.get("POSTGRES_HOST", "localhost"),
        "POSTGRES_PORT": os.environ.get("POSTGRES_PORT", "5432"),
        "POSTGRES_USER": os.environ.get("POSTGRES_TEST_USER", "testuser"),
        "POSTGRES_PASSWORD": os.environ.get("POSTGRES_TEST_PASSWORD", "testpass"),
        "POSTGRES_DB": os.environ.get("POSTGRES_TEST_DB", "testdb"),
        "SRS_ACCELERATED_MODE": "false",
        "DEBUG": "true",
    }
    os.environ.update(test_env)

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


# ============================================================================
# Sample Configuration Data
# ============================================================================


@pytest.fixture
def sample_yaml_config() -> dict[str, Any]:
    """
    Provide a sample YAML configuration for testing.

    This matches the structure of config/default.yaml.
    """
    return {
        "app": {
            "name": "Test Kanji SRS",
        },
        "database": {
            "pool_size": 3,
            "max_overflow": 5,
            "pool_timeout": 10,
        },
    }


# ============================================================================
# Scheduling Fixtures
# ============================================================================


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def table() -> IntervalTable:
    """The reference interval table [1, 1, 2, 4, 7, 14, 30, 60, 90, 180, 365]."""
    return IntervalTable.default()


@pytest.fixture
def clock() -> ReviewClock:
    """Production-speed clock frozen at NOW."""
    return ReviewClock(time_source=lambda: NOW)


@pytest.fixture
def scheduler(table: IntervalTable, clock: ReviewClock) -> ReviewScheduler:
    return ReviewScheduler(table, clock)


@pytest.fixture
def store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def n5_items() -> list[Item]:
    return [Item(id=f"k5-{i:02d}", character=f"N5-{i}", level=5) for i in range(1, 9)]


@pytest.fixture
def n4_items() -> list[Item]:
    return [Item(id=f"k4-{i:02d}", character=f"N4-{i}", level=4) for i in range(1, 5)]


@pytest.fixture
def catalog(n5_items: list[Item], n4_items: list[Item]) -> InMemoryItemCatalog:
    """
    Catalog with 8 N5 and 4 N4 items.

    LEARNER owns DECK, which starts with the first three N5 items.
    """
    return InMemoryItemCatalog(
        items=n5_items + n4_items,
        study_sets=[
            StudySetInfo(id=DECK, learner_id=LEARNER, item_ids=["k5-01", "k5-02", "k5-03"]),
            StudySetInfo(id="deck-other", learner_id="learner-2", item_ids=["k5-04"]),
        ],
    )


@pytest.fixture
def spaced_rep_service(
    store: InMemoryProgressStore,
    catalog: InMemoryItemCatalog,
    scheduler: ReviewScheduler,
) -> SpacedRepService:
    return SpacedRepService(store=store, catalog=catalog, scheduler=scheduler)


# ============================================================================
# Mock Database Session
# ============================================================================


@pytest.fixture
def mock_db_session() -> MagicMock:
    """
    Provide a mock async database session.

    Use this for unit tests that need database interactions
    without actually connecting to PostgreSQL.
    """
    mock_session = MagicMock()
    mock_session.add = MagicMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.refresh = AsyncMock()
    mock_session.execute = AsyncMock()
    mock_session.close = AsyncMock()
    return mock_session
