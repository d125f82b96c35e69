"""
Review API Router

Endpoints for recording answers, selecting reviews and completing study
sessions. Service errors (unknown items, conflicts, bad diagnostics input)
are turned into JSON error responses by the error-handling middleware.

Endpoints:
- POST /api/review/{learner_id}/answers - Submit one or more answers
- GET /api/review/{learner_id}/due - Items due for review
- GET /api/review/{learner_id}/mastered - Retired items
- GET /api/review/{learner_id}/items/{item_id} - Progress for one item
- POST /api/review/{learner_id}/items/{item_id}/reset - Reset an item (diagnostic)
- POST /api/review/{learner_id}/items/{item_id}/force-schedule - Move next review (diagnostic)
- POST /api/review/{learner_id}/items/{item_id}/simulate - Simulate correct answers (diagnostic)
- POST /api/review/{learner_id}/sessions/{item_set_id}/complete - Complete a study session
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kanji_srs.config.settings import Settings, get_settings
from kanji_srs.db.base import get_db
from kanji_srs.models.base import ErrorDetail
from kanji_srs.models.learning import (
    ForceScheduleRequest,
    ProgressListResponse,
    ProgressResponse,
    SessionCompleteRequest,
    SessionCompleteResponse,
    SimulateProgressionRequest,
    SubmitAnswersRequest,
)
from kanji_srs.services.learning import (
    LeveledItemSupply,
    ReviewScheduler,
    SessionService,
    SpacedRepService,
    get_scheduler,
)

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/review",
    tags=["review"],
    responses={
        404: {"model": ErrorDetail, "description": "Unknown item, study set or record"},
        409: {"model": ErrorDetail, "description": "Concurrent modification"},
    },
)


# ===========================================
# Dependency Injection
# ===========================================


async def get_spaced_rep_service(
    db: AsyncSession = Depends(get_db),
    scheduler: ReviewScheduler = Depends(get_scheduler),
) -> SpacedRepService:
    """Get spaced repetition service on the shared scheduler."""
    return SpacedRepService.from_session(db, scheduler=scheduler)


async def get_session_service(
    spaced_rep: SpacedRepService = Depends(get_spaced_rep_service),
    settings: Settings = Depends(get_settings),
) -> SessionService:
    """Get session service sharing the review service's store and catalog."""
    return SessionService(
        spaced_rep_service=spaced_rep,
        catalog=spaced_rep.catalog,
        item_supply=LeveledItemSupply(spaced_rep.catalog),
        settings=settings,
    )


# ===========================================
# Answer Endpoints
# ===========================================


@router.post("/{learner_id}/answers", response_model=ProgressListResponse)
async def submit_answers(
    learner_id: str,
    request: SubmitAnswersRequest,
    service: SpacedRepService = Depends(get_spaced_rep_service),
) -> ProgressListResponse:
    """
    Submit answers for a learner.

    Returns the record after each outcome, in submission order.
    """
    updated = await service.submit_answers(learner_id, request.outcomes)
    return ProgressListResponse.from_records(learner_id, updated)


# ===========================================
# Query Endpoints
# ===========================================


@router.get("/{learner_id}/due", response_model=ProgressListResponse)
async def get_due_items(
    learner_id: str,
    item_set_id: Optional[str] = Query(None, description="Restrict to a study set"),
    item_ids: Optional[list[str]] = Query(None, description="Restrict to these items"),
    limit: Optional[int] = Query(None, ge=1, le=500, description="Maximum items to return"),
    service: SpacedRepService = Depends(get_spaced_rep_service),
    settings: Settings = Depends(get_settings),
) -> ProgressListResponse:
    """
    Get items due for review, most overdue first.

    With item_set_id, set members that were never reviewed are initialized
    and come back due. At most ``limit`` items are returned (default
    REVIEW_DEFAULT_LIMIT); ``total`` is the number due overall.
    """
    due, total = await service.get_due_page(
        learner_id,
        item_set_id=item_set_id,
        item_ids=item_ids,
        limit=limit or settings.REVIEW_DEFAULT_LIMIT,
    )
    return ProgressListResponse.from_records(learner_id, due, total=total)


@router.get("/{learner_id}/mastered", response_model=ProgressListResponse)
async def get_mastered_items(
    learner_id: str,
    item_set_id: Optional[str] = Query(None, description="Restrict to a study set"),
    item_ids: Optional[list[str]] = Query(None, description="Restrict to these items"),
    service: SpacedRepService = Depends(get_spaced_rep_service),
) -> ProgressListResponse:
    """Get retired items, most recently mastered first."""
    mastered = await service.get_mastered_items(
        learner_id, item_set_id=item_set_id, item_ids=item_ids
    )
    return ProgressListResponse.from_records(learner_id, mastered)


@router.get("/{learner_id}/items/{item_id}", response_model=ProgressResponse)
async def get_progress(
    learner_id: str,
    item_id: str,
    service: SpacedRepService = Depends(get_spaced_rep_service),
) -> ProgressResponse:
    """Get the progress record for one item."""
    record = await service.get_progress(learner_id, item_id)
    return ProgressResponse.from_record(record)


# ===========================================
# Diagnostic Endpoints
# ===========================================


@router.post("/{learner_id}/items/{item_id}/reset", response_model=ProgressResponse)
async def reset_item_progress(
    learner_id: str,
    item_id: str,
    service: SpacedRepService = Depends(get_spaced_rep_service),
) -> ProgressResponse:
    """Reset an item to the unanswered state, due immediately."""
    record = await service.reset_item_progress(learner_id, item_id)
    return ProgressResponse.from_record(record)


@router.post("/{learner_id}/items/{item_id}/force-schedule", response_model=ProgressResponse)
async def force_schedule(
    learner_id: str,
    item_id: str,
    request: ForceScheduleRequest,
    service: SpacedRepService = Depends(get_spaced_rep_service),
) -> ProgressResponse:
    """Set an item's next review to now + delta_seconds."""
    record = await service.force_schedule(learner_id, item_id, request.delta_seconds)
    return ProgressResponse.from_record(record)


@router.post("/{learner_id}/items/{item_id}/simulate", response_model=ProgressResponse)
async def simulate_progression(
    learner_id: str,
    item_id: str,
    request: SimulateProgressionRequest,
    service: SpacedRepService = Depends(get_spaced_rep_service),
) -> ProgressResponse:
    """Jump an item to the state N consecutive correct answers produce."""
    record = await service.simulate_progression(learner_id, item_id, request.correct_answers)
    return ProgressResponse.from_record(record)


# ===========================================
# Session Endpoints
# ===========================================


@router.post(
    "/{learner_id}/sessions/{item_set_id}/complete",
    response_model=SessionCompleteResponse,
)
async def complete_session(
    learner_id: str,
    item_set_id: str,
    request: SessionCompleteRequest,
    service: SessionService = Depends(get_session_service),
) -> SessionCompleteResponse:
    """
    Complete a study session.

    Records the answers, then expands the study set when asked to or when
    enough of its items are mastered.
    """
    return await service.complete_session(learner_id, item_set_id, request)
