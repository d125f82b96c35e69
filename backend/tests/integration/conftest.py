"""
Integration Test Fixtures

Provides fixtures for integration tests that need a running PostgreSQL.
Tables are dropped and recreated for every test, so point these tests at
a dedicated test database (POSTGRES_TEST_* env vars).

Tests skip when the database cannot be reached.
"""

import os
from pathlib import Path
from typing import AsyncGenerator
from urllib.parse import quote_plus

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from kanji_srs.db.base import Base
from kanji_srs.db.models_learning import Item, StudySet, StudySetItem

# Load .env file FIRST, before reading any environment variables
_project_root = Path(__file__).parent.parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


# =============================================================================
# Safety Check - Runs before any integration tests
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def verify_test_database():
    """
    Safety check: refuse to drop tables in something that looks like production.

    Set ALLOW_PROD_DB_TESTS=1 to skip this check (for local development only).
    """
    if os.environ.get("ALLOW_PROD_DB_TESTS", "").lower() in ("1", "true", "yes"):
        return

    config = get_test_db_config()
    for indicator in ["kanjisrs", "prod", "production"]:
        assert indicator not in config["db"].lower(), (
            f"SAFETY CHECK FAILED: Database name '{config['db']}' looks like production! "
            "Set POSTGRES_TEST_DB environment variable or ALLOW_PROD_DB_TESTS=1."
        )


# =============================================================================
# Database Configuration
# =============================================================================


def get_test_db_config() -> dict:
    """
    Get test database configuration from environment variables.

    Priority: POSTGRES_TEST_* > POSTGRES_* > defaults
    """
    return {
        "host": os.environ.get("POSTGRES_HOST", "localhost"),
        "port": os.environ.get("POSTGRES_PORT", "5432"),
        "user": os.environ.get("POSTGRES_TEST_USER", os.environ.get("POSTGRES_USER", "testuser")),
        "password": os.environ.get(
            "POSTGRES_TEST_PASSWORD", os.environ.get("POSTGRES_PASSWORD", "testpass")
        ),
        "db": os.environ.get("POSTGRES_TEST_DB", os.environ.get("POSTGRES_DB", "testdb")),
    }


def get_test_db_url() -> str:
    """Build the asyncpg URL from the test config."""
    config = get_test_db_config()
    # URL-encode the password to handle special characters
    encoded_password = quote_plus(config["password"])
    return (
        f"postgresql+asyncpg://{config['user']}:{encoded_password}"
        f"@{config['host']}:{config['port']}/{config['db']}"
    )


@pytest_asyncio.fixture
async def pg_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Engine with freshly created tables and a small seeded catalog."""
    engine = create_async_engine(
        get_test_db_url(), poolclass=NullPool, connect_args={"timeout": 3}
    )
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    except (OSError, SQLAlchemyError) as e:
        await engine.dispose()
        pytest.skip(f"Test database not available: {e}")

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        session.add_all(
            [Item(id=f"k5-{i:02d}", character=f"N5-{i}", level=5) for i in range(1, 6)]
            + [Item(id=f"k4-{i:02d}", character=f"N4-{i}", level=4) for i in range(1, 3)]
        )
        session.add(StudySet(id="deck-1", learner_id="learner-1", name="My Deck"))
        await session.flush()
        session.add_all(
            [StudySetItem(study_set_id="deck-1", item_id=f"k5-0{i}") for i in range(1, 4)]
        )
        await session.commit()

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(pg_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(pg_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
