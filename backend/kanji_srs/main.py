"""
Kanji SRS API

Application factory and ASGI entry point.

Run with:
    uvicorn kanji_srs.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from kanji_srs.config.settings import Settings, get_settings
from kanji_srs.db.base import init_db
from kanji_srs.logging_config import configure_logging
from kanji_srs.middleware.error_handling import setup_error_handling
from kanji_srs.routers import review
from kanji_srs.services.learning.scheduler import get_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("Database tables ready")
    get_scheduler()
    yield


def create_app(settings: Optional[Settings] = None, init_database: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (defaults to the cached app settings)
        init_database: Create missing tables on startup
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        lifespan=lifespan if init_database else None,
    )
    setup_error_handling(app, debug=settings.DEBUG)
    app.include_router(review.router)

    @app.get("/healthz")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    mode = "accelerated" if settings.SRS_ACCELERATED_MODE else "production"
    logger.info(f"{settings.APP_NAME} starting (clock mode: {mode})")
    return app


app = create_app()
