"""
Database Engine & Sessions

Async SQLAlchemy engine (asyncpg) for the review tables, the declarative
base they are mapped on, and the FastAPI session dependency.

Pool sizing comes from the ``database`` section of config/default.yaml;
connection settings from the POSTGRES_* environment variables.

Stores commit their own writes (one commit per progress upsert), so
``get_db`` only has to roll back whatever is left when a request fails.

Usage:
    from kanji_srs.db.base import async_session_maker

    async with async_session_maker() as session:
        store = SqlAlchemyProgressStore(session)
"""

import logging
from collections.abc import AsyncGenerator
from typing import Any, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from kanji_srs.config import Settings, settings, yaml_config

logger = logging.getLogger(__name__)


def build_engine(
    app_settings: Settings, pool_config: Optional[dict[str, Any]] = None
) -> AsyncEngine:
    """Create the async engine from settings and the YAML pool section."""
    pool_config = pool_config or {}
    return create_async_engine(
        app_settings.POSTGRES_URL,
        pool_size=pool_config.get("pool_size", 5),
        max_overflow=pool_config.get("max_overflow", 10),
        pool_timeout=pool_config.get("pool_timeout", 30),
        pool_pre_ping=True,
        echo=app_settings.DEBUG,
    )


engine = build_engine(settings, yaml_config.get("database"))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for the catalog and progress tables."""

    pass


# Registers the mapped tables on Base.metadata; must follow the Base definition.
from kanji_srs.db import models_learning  # noqa: F401, E402


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create any review tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready: {', '.join(sorted(Base.metadata.tables))}")
