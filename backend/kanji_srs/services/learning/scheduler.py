"""
Review Scheduler Engine

Deterministic lookup-table scheduler. Given a learner's progress record for
an item (or its absence) and whether the latest answer was correct, it
computes the next progress state.

State Machine:
    NEW → LEARNING → RETIRED

    NEW       first answer: consecutive = 1|0, interval = table[0], due now
    LEARNING  correct below max: consecutive += 1, interval = table[min(c, max_index)]
    LEARNING  correct at max: RETIRED, parked at FAR_FUTURE
    LEARNING  wrong: consecutive = 0, interval = table[0], due in table[0] units
    RETIRED   terminal; answers only bump the lifetime counters

Every transition returns a new ProgressRecord; records are never mutated in
place, so a transition that fails to persist leaves nothing behind.

Usage:
    from kanji_srs.services.learning.scheduler import create_scheduler

    scheduler = create_scheduler()
    record = scheduler.apply_answer(None, "learner-1", "kanji-42", True, now)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Optional

from kanji_srs.config.settings import Settings, get_settings
from kanji_srs.enums.learning import ProgressState
from kanji_srs.middleware.error_handling import ValidationError
from kanji_srs.services.learning.clock import ReviewClock, create_clock, utc_now
from kanji_srs.services.learning.intervals import IntervalTable

logger = logging.getLogger(__name__)

# Observable interval value of a retired record, kept for clients that
# predate the RETIRED state tag.
RETIRED_INTERVAL = 999999


@dataclass(frozen=True)
class ProgressRecord:
    """
    Scheduling state of one (learner, item) pair.

    The ``state`` tag is authoritative for retirement; ``interval`` only
    mirrors it through the RETIRED_INTERVAL compatibility value.

    All datetimes are timezone-aware UTC. ``version`` is the optimistic
    concurrency token owned by the progress store (0 = never persisted).
    """

    learner_id: str
    item_id: str
    state: ProgressState = ProgressState.NEW
    interval: int = 1
    consecutive_correct: int = 0
    next_review_at: datetime = field(default_factory=utc_now)
    last_reviewed_at: Optional[datetime] = None
    right_count: int = 0
    wrong_count: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    version: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.learner_id, self.item_id)

    @property
    def is_retired(self) -> bool:
        return self.state == ProgressState.RETIRED

    @property
    def is_new(self) -> bool:
        return self.state == ProgressState.NEW

    @property
    def total_answers(self) -> int:
        return self.right_count + self.wrong_count

    def is_due(self, now: datetime) -> bool:
        return not self.is_retired and self.next_review_at <= now


class ReviewScheduler:
    """
    Interval-table scheduler.

    Pure transition logic: no I/O, no clock reads. ``now`` is always passed
    in, which keeps every transition deterministic and replayable.

    Attributes:
        table: Interval lookup table
        clock: Converts interval units into due timestamps
    """

    def __init__(self, table: IntervalTable, clock: ReviewClock):
        self.table = table
        self.clock = clock

    # =========================================================================
    # Record creation
    # =========================================================================

    def new_record(self, learner_id: str, item_id: str, now: datetime) -> ProgressRecord:
        """
        Build an unanswered record that is due immediately.

        Used when an item joins a learner's study set, and by lazy
        initialization before review queries.
        """
        return ProgressRecord(
            learner_id=learner_id,
            item_id=item_id,
            state=ProgressState.NEW,
            interval=self.table.value_at(0),
            consecutive_correct=0,
            next_review_at=now,
            last_reviewed_at=None,
            right_count=0,
            wrong_count=0,
            created_at=now,
            updated_at=now,
        )

    # =========================================================================
    # Answer transitions
    # =========================================================================

    def apply_answer(
        self,
        record: Optional[ProgressRecord],
        learner_id: str,
        item_id: str,
        is_correct: bool,
        now: datetime,
    ) -> ProgressRecord:
        """
        Compute the state that follows one answer.

        Args:
            record: Current record, or None if the pair has never been seen
            learner_id: Learner the answer belongs to
            item_id: Item that was answered
            is_correct: Whether the answer was correct
            now: Time of the answer

        Returns:
            New ProgressRecord (same version as the input; the store bumps it)
        """
        if record is None:
            record = self.new_record(learner_id, item_id, now)

        if record.is_new:
            new = self._from_new(record, is_correct, now)
        elif record.is_retired:
            new = self._from_retired(record, is_correct, now)
        elif is_correct:
            new = self._correct(record, now)
        else:
            new = self._wrong(record, now)

        if new.is_retired and not record.is_retired:
            logger.info(
                f"Retired item {item_id} for learner {learner_id} after "
                f"{new.consecutive_correct} consecutive correct answers"
            )
        return new

    def _from_new(self, record: ProgressRecord, is_correct: bool, now: datetime) -> ProgressRecord:
        # First answers stay due immediately so new items can be drilled in the
        # same sitting they were introduced.
        return replace(
            record,
            state=ProgressState.LEARNING,
            interval=self.table.value_at(0),
            consecutive_correct=1 if is_correct else 0,
            next_review_at=now,
            last_reviewed_at=now,
            right_count=record.right_count + (1 if is_correct else 0),
            wrong_count=record.wrong_count + (0 if is_correct else 1),
            updated_at=now,
        )

    def _correct(self, record: ProgressRecord, now: datetime) -> ProgressRecord:
        consecutive = record.consecutive_correct + 1

        if record.interval >= self.table.max_value():
            return replace(
                record,
                state=ProgressState.RETIRED,
                interval=RETIRED_INTERVAL,
                consecutive_correct=consecutive,
                next_review_at=self.clock.far_future(),
                last_reviewed_at=now,
                right_count=record.right_count + 1,
                updated_at=now,
            )

        interval = self.table.value_at(min(consecutive, self.table.max_index()))
        return replace(
            record,
            interval=interval,
            consecutive_correct=consecutive,
            next_review_at=self.clock.due_at(interval, now),
            last_reviewed_at=now,
            right_count=record.right_count + 1,
            updated_at=now,
        )

    def _wrong(self, record: ProgressRecord, now: datetime) -> ProgressRecord:
        interval = self.table.value_at(0)
        return replace(
            record,
            interval=interval,
            consecutive_correct=0,
            next_review_at=self.clock.due_at(interval, now),
            last_reviewed_at=now,
            wrong_count=record.wrong_count + 1,
            updated_at=now,
        )

    def _from_retired(self, record: ProgressRecord, is_correct: bool, now: datetime) -> ProgressRecord:
        # Retirement is terminal: only the lifetime counters move.
        return replace(
            record,
            last_reviewed_at=now,
            right_count=record.right_count + (1 if is_correct else 0),
            wrong_count=record.wrong_count + (0 if is_correct else 1),
            updated_at=now,
        )

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def reset(self, record: ProgressRecord, now: datetime) -> ProgressRecord:
        """Reinitialize a record to the unanswered, immediately-due state."""
        fresh = self.new_record(record.learner_id, record.item_id, now)
        return replace(fresh, created_at=record.created_at, version=record.version)

    def force_schedule(
        self, record: ProgressRecord, delta: timedelta, now: datetime
    ) -> ProgressRecord:
        """
        Move a record's next review to ``now + delta``.

        Raises:
            ValidationError: If the record is retired
        """
        if record.is_retired:
            raise ValidationError(
                f"Item {record.item_id} is retired for learner {record.learner_id} "
                "and cannot be rescheduled"
            )
        return replace(record, next_review_at=now + delta, updated_at=now)

    def max_simulated_answers(self) -> int:
        """
        Correct answers needed from NEW to reach retirement.

        For the reference table this is max_index() + 1 (11).
        """
        # The first answer lands on index 0, answer c >= 2 on index c.
        top = self.table.max_value()
        if self.table.value_at(0) >= top:
            return 2
        first_top = self.table.values.index(top)
        return max(2, first_top) + 1

    def simulate(
        self,
        learner_id: str,
        item_id: str,
        correct_answers: int,
        now: datetime,
        record: Optional[ProgressRecord] = None,
    ) -> ProgressRecord:
        """
        Produce the state ``correct_answers`` consecutive correct answers
        from a fresh record would reach, as if all were given at ``now``.

        Args:
            learner_id: Learner to simulate for
            item_id: Item to simulate for
            correct_answers: Number of consecutive correct answers
            now: Time the simulated answers are stamped with
            record: Existing record whose identity (created_at, version) is kept

        Raises:
            ValidationError: If correct_answers is negative or past retirement
        """
        limit = self.max_simulated_answers()
        if correct_answers < 0 or correct_answers > limit:
            raise ValidationError(
                f"Simulated answer count must be between 0 and {limit}, got {correct_answers}",
                details={"min": 0, "max": limit, "value": correct_answers},
            )

        simulated = self.new_record(learner_id, item_id, now)
        for _ in range(correct_answers):
            simulated = self.apply_answer(simulated, learner_id, item_id, True, now)

        if record is not None:
            simulated = replace(simulated, created_at=record.created_at, version=record.version)
        return simulated


def create_scheduler(
    settings: Optional[Settings] = None,
    clock: Optional[ReviewClock] = None,
) -> ReviewScheduler:
    """
    Create a scheduler configured from settings.

    Args:
        settings: Settings to read (defaults to the cached app settings)
        clock: Pre-built clock (defaults to create_clock(settings))

    Returns:
        Configured ReviewScheduler
    """
    return ReviewScheduler(
        table=IntervalTable.from_settings(settings),
        clock=clock or create_clock(settings),
    )


@lru_cache()
def get_scheduler() -> ReviewScheduler:
    """
    Get the process-wide scheduler.

    Built from the app settings on first use, so the clock mode is chosen
    (and logged) once per process rather than once per request.
    """
    return create_scheduler(get_settings())
