"""
Spaced Repetition Service

Caller-facing review operations. Ties the interval-table scheduler to the
progress store and the item catalog.

Handles:
- Answer submission (one or many outcomes per call)
- Due and mastered queries, optionally scoped to a study set
- Diagnostics: reset, force-schedule and simulate-progression

Every answer is applied as its own read-modify-write against the store, so
a batch that fails halfway keeps the answers it already recorded.

Usage:
    from kanji_srs.services.learning import SpacedRepService

    service = SpacedRepService.from_session(db_session)

    # Record answers
    updated = await service.submit_answers("learner-1", [
        AnswerOutcome(item_id="kanji-42", is_correct=True),
    ])

    # What should the learner review next?
    due = await service.get_due_items("learner-1", item_set_id="deck-1")
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kanji_srs.middleware.error_handling import NotFoundError
from kanji_srs.models.learning import AnswerOutcome
from kanji_srs.services.learning.catalog import ItemCatalog, SqlAlchemyItemCatalog
from kanji_srs.services.learning.progress_store import (
    ProgressStore,
    SqlAlchemyProgressStore,
)
from kanji_srs.services.learning.review_selection import ReviewSelector
from kanji_srs.services.learning.scheduler import (
    ProgressRecord,
    ReviewScheduler,
    get_scheduler,
)

logger = logging.getLogger(__name__)


class SpacedRepService:
    """
    Service for recording answers and selecting reviews.

    Attributes:
        store: Progress record store
        catalog: Item catalog and study sets
        scheduler: Transition engine
        selector: Due/mastered queries and lazy initialization
    """

    def __init__(
        self,
        store: ProgressStore,
        catalog: ItemCatalog,
        scheduler: Optional[ReviewScheduler] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.scheduler = scheduler or get_scheduler()
        self.selector = ReviewSelector(store, self.scheduler)

    @classmethod
    def from_session(
        cls, db: AsyncSession, scheduler: Optional[ReviewScheduler] = None
    ) -> "SpacedRepService":
        """Build a service backed by the database tables."""
        return cls(
            store=SqlAlchemyProgressStore(db),
            catalog=SqlAlchemyItemCatalog(db),
            scheduler=scheduler,
        )

    def _now(self, now: Optional[datetime]) -> datetime:
        return now or self.scheduler.clock.now()

    async def _require_items(self, item_ids: Iterable[str]) -> None:
        missing = [
            item_id
            for item_id in dict.fromkeys(item_ids)
            if not await self.catalog.has_item(item_id)
        ]
        if missing:
            raise NotFoundError(
                f"Item {missing[0]} not found",
                details={"missing_item_ids": missing},
            )

    async def _require_record(self, learner_id: str, item_id: str) -> ProgressRecord:
        record = await self.store.get(learner_id, item_id)
        if record is None:
            raise NotFoundError(
                f"No progress for item {item_id} and learner {learner_id}",
                details={"learner_id": learner_id, "item_id": item_id},
            )
        return record

    # =========================================================================
    # Answers
    # =========================================================================

    async def record_answer(
        self,
        learner_id: str,
        item_id: str,
        is_correct: bool,
        now: Optional[datetime] = None,
    ) -> ProgressRecord:
        """
        Apply one answer and persist the result.

        Does not check the catalog; submit_answers does that for the batch.

        Raises:
            ConcurrencyConflictError: If the record changed underneath us
        """
        now = self._now(now)
        current = await self.store.get(learner_id, item_id)
        updated = self.scheduler.apply_answer(current, learner_id, item_id, is_correct, now)
        saved = await self.store.upsert(updated)

        logger.debug(
            f"Recorded {'correct' if is_correct else 'wrong'} answer for item {item_id}, "
            f"learner {learner_id}: interval={saved.interval}, state={saved.state.value}"
        )
        return saved

    async def submit_answers(
        self,
        learner_id: str,
        outcomes: list[AnswerOutcome],
        now: Optional[datetime] = None,
    ) -> list[ProgressRecord]:
        """
        Record a batch of answers.

        Outcomes are applied in submission order, so repeated answers to the
        same item chain. All item ids are checked before anything is written.

        Args:
            learner_id: Learner who answered
            outcomes: Answers to record
            now: Answer time (defaults to the clock)

        Returns:
            The persisted record after each outcome, in submission order

        Raises:
            NotFoundError: If any item is not in the catalog
            ConcurrencyConflictError: If a record changed underneath us;
                outcomes before the failing one stay recorded
        """
        await self._require_items(o.item_id for o in outcomes)

        now = self._now(now)
        results = []
        for outcome in outcomes:
            results.append(
                await self.record_answer(learner_id, outcome.item_id, outcome.is_correct, now)
            )

        retired = sum(1 for r in results if r.is_retired)
        logger.info(
            f"Recorded {len(results)} answers for learner {learner_id} "
            f"({retired} items retired)"
        )
        return results

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_progress(self, learner_id: str, item_id: str) -> ProgressRecord:
        """
        Get the progress record for one item.

        Raises:
            NotFoundError: If the learner has no record for the item
        """
        return await self._require_record(learner_id, item_id)

    async def initialize_items(
        self,
        learner_id: str,
        item_ids: Iterable[str],
        now: Optional[datetime] = None,
    ) -> list[ProgressRecord]:
        """Create NEW, immediately-due records for items that have none."""
        return await self.selector.ensure_initialized(learner_id, item_ids, self._now(now))

    async def get_due_items(
        self,
        learner_id: str,
        item_set_id: Optional[str] = None,
        item_ids: Optional[list[str]] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[ProgressRecord]:
        """
        Items due for review, most overdue first.

        With a study set, the query is restricted to its members and members
        without a record are initialized first (so they come back due).

        Args:
            learner_id: Learner to query
            item_set_id: Restrict to this study set
            item_ids: Restrict to these items (ignored when item_set_id is set)
            limit: Maximum records to return
            now: Evaluation time (defaults to the clock)

        Raises:
            NotFoundError: If the study set does not exist or is not the learner's
        """
        now = self._now(now)
        item_ids = await self._due_scope(learner_id, item_set_id, item_ids, now)
        return await self.selector.due_items(learner_id, item_ids, now=now, limit=limit)

    async def get_due_page(
        self,
        learner_id: str,
        item_set_id: Optional[str] = None,
        item_ids: Optional[list[str]] = None,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[list[ProgressRecord], int]:
        """
        Like get_due_items, but also returns how many items are due in total.

        Returns:
            (up to ``limit`` due records, number of due records without the limit)
        """
        now = self._now(now)
        item_ids = await self._due_scope(learner_id, item_set_id, item_ids, now)
        due = await self.selector.due_items(learner_id, item_ids, now=now, limit=limit)
        if limit is None or len(due) < limit:
            return due, len(due)
        return due, await self.selector.count_due(learner_id, item_ids, now=now)

    async def _due_scope(
        self,
        learner_id: str,
        item_set_id: Optional[str],
        item_ids: Optional[list[str]],
        now: datetime,
    ) -> Optional[list[str]]:
        if item_set_id is None:
            return item_ids
        set_item_ids = await self.catalog.get_set_item_ids(item_set_id, learner_id)
        await self.selector.ensure_initialized(learner_id, set_item_ids, now)
        return set_item_ids

    async def get_mastered_items(
        self,
        learner_id: str,
        item_set_id: Optional[str] = None,
        item_ids: Optional[list[str]] = None,
    ) -> list[ProgressRecord]:
        """Retired items, most recently mastered first."""
        if item_set_id is not None:
            item_ids = await self.catalog.get_set_item_ids(item_set_id, learner_id)
        return await self.selector.mastered_items(learner_id, item_ids)

    # =========================================================================
    # Diagnostics
    # =========================================================================

    async def reset_item_progress(
        self,
        learner_id: str,
        item_id: str,
        now: Optional[datetime] = None,
    ) -> ProgressRecord:
        """Put an item back to the unanswered state, due immediately."""
        record = await self._require_record(learner_id, item_id)
        saved = await self.store.upsert(self.scheduler.reset(record, self._now(now)))
        logger.info(f"Reset progress for item {item_id}, learner {learner_id}")
        return saved

    async def force_schedule(
        self,
        learner_id: str,
        item_id: str,
        delta_seconds: int,
        now: Optional[datetime] = None,
    ) -> ProgressRecord:
        """
        Move an item's next review to now + delta_seconds.

        Raises:
            NotFoundError: If the learner has no record for the item
            ValidationError: If the item is retired
        """
        record = await self._require_record(learner_id, item_id)
        updated = self.scheduler.force_schedule(
            record, timedelta(seconds=delta_seconds), self._now(now)
        )
        saved = await self.store.upsert(updated)
        logger.info(
            f"Force-scheduled item {item_id} for learner {learner_id} "
            f"to {saved.next_review_at.isoformat()}"
        )
        return saved

    async def simulate_progression(
        self,
        learner_id: str,
        item_id: str,
        correct_answers: int,
        now: Optional[datetime] = None,
    ) -> ProgressRecord:
        """
        Overwrite a record with the state N consecutive correct answers reach.

        Creates the record if the learner has none.

        Raises:
            NotFoundError: If the item is not in the catalog
            ValidationError: If correct_answers is out of range
        """
        await self._require_items([item_id])

        current = await self.store.get(learner_id, item_id)
        simulated = self.scheduler.simulate(
            learner_id, item_id, correct_answers, self._now(now), record=current
        )
        saved = await self.store.upsert(simulated)
        logger.info(
            f"Simulated {correct_answers} correct answers for item {item_id}, "
            f"learner {learner_id}: interval={saved.interval}"
        )
        return saved
