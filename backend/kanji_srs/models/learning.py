"""
Review Scheduling API Models (Pydantic)

Request/response schemas for the review API:
- Answer submission
- Progress records (due / mastered / single item)
- Diagnostics (reset, force-schedule, simulate)
- Session completion with study-set expansion

ARCHITECTURE NOTE:
    Services compute with the ProgressRecord dataclass
    (kanji_srs.services.learning.scheduler); these models are the API view.

    Data flows: API Request → Pydantic → Service → ProgressRecord → Store
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from pydantic import AwareDatetime, Field

from kanji_srs.enums.learning import ProgressState
from kanji_srs.models.base import StrictRequest, StrictResponse

if TYPE_CHECKING:
    from kanji_srs.services.learning.scheduler import ProgressRecord


# ===========================================
# Answers
# ===========================================


class AnswerOutcome(StrictRequest):
    """One answer given during review."""

    item_id: str = Field(..., min_length=1, description="Item that was answered")
    is_correct: bool = Field(..., description="Whether the answer was correct")


class SubmitAnswersRequest(StrictRequest):
    """Batch of answers for one learner, applied in order per item."""

    outcomes: list[AnswerOutcome] = Field(..., min_length=1)


# ===========================================
# Progress
# ===========================================


class ProgressResponse(StrictResponse):
    """
    Scheduling state of one (learner, item) pair.

    ``interval`` reads 999999 once the item is retired.
    """

    learner_id: str
    item_id: str
    state: ProgressState
    interval: int
    consecutive_correct: int
    next_review_at: AwareDatetime
    last_reviewed_at: Optional[AwareDatetime] = None
    right_count: int
    wrong_count: int
    updated_at: AwareDatetime
    version: int

    @classmethod
    def from_record(cls, record: ProgressRecord) -> ProgressResponse:
        return cls.model_validate(record)


class ProgressListResponse(StrictResponse):
    """
    A list of progress records for one learner.

    ``total`` counts every matching record. When a limit cut the list short
    it is larger than ``len(items)``.
    """

    learner_id: str
    items: list[ProgressResponse]
    total: int

    @classmethod
    def from_records(
        cls,
        learner_id: str,
        records: list[ProgressRecord],
        total: Optional[int] = None,
    ) -> ProgressListResponse:
        return cls(
            learner_id=learner_id,
            items=[ProgressResponse.from_record(r) for r in records],
            total=total if total is not None else len(records),
        )


# ===========================================
# Diagnostics
# ===========================================


class ForceScheduleRequest(StrictRequest):
    """Set next_review_at to now + delta_seconds (negative makes it overdue)."""

    delta_seconds: int = Field(..., description="Offset from now in seconds")


class SimulateProgressionRequest(StrictRequest):
    """Jump a record to the state N consecutive correct answers produce."""

    correct_answers: int = Field(..., ge=0, description="Consecutive correct answers")


# ===========================================
# Sessions
# ===========================================


class SessionOptions(StrictRequest):
    """
    Study-set expansion options for a completed session.

    Unset values fall back to the SESSION_* settings.
    """

    add_new_items: bool = Field(False, description="Expand the study set regardless of mastery")
    new_item_count: Optional[int] = Field(None, ge=1, le=20)
    auto_expand: Optional[bool] = Field(
        None, description="Expand automatically once enough items are mastered"
    )
    mastery_count_threshold: Optional[int] = Field(None, ge=1, le=50)
    mastery_interval_threshold: Optional[int] = Field(
        None,
        ge=1,
        le=50,
        description="Also count items at or above this interval as mastered",
    )


class SessionCompleteRequest(StrictRequest):
    """Answers from one study session plus expansion options."""

    outcomes: list[AnswerOutcome] = Field(default_factory=list)
    options: SessionOptions = Field(default_factory=SessionOptions)


class ExpansionResult(StrictResponse):
    """What happened to the study set after the session."""

    triggered: bool = False
    reason: Optional[str] = None  # "requested" or "mastery_threshold"
    requested_count: int = 0
    added_item_ids: list[str] = Field(default_factory=list)
    error: Optional[str] = None  # Set when the item supply came up empty


class SessionCompleteResponse(StrictResponse):
    """Result of completing a session."""

    learner_id: str
    item_set_id: str
    updated: list[ProgressResponse]
    mastered_count: int
    expansion: ExpansionResult
    due_items: list[ProgressResponse]
    completed_at: datetime
