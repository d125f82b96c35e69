"""
Review Selection & Retirement Queries

Read side of the scheduler: which of a learner's items are due, and which
are mastered (retired).

Lazy initialization is an explicit step. ``ensure_initialized`` gives every
listed item without a progress record a NEW record that is due
immediately; the queries themselves never write. Callers that select
reviews for a study set run ``ensure_initialized`` first so that items
added to the set show up as due straight away.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from kanji_srs.middleware.error_handling import ConcurrencyConflictError
from kanji_srs.services.learning.progress_store import ProgressStore
from kanji_srs.services.learning.scheduler import ProgressRecord, ReviewScheduler

logger = logging.getLogger(__name__)


class ReviewSelector:
    """Due and mastered queries over a progress store."""

    def __init__(self, store: ProgressStore, scheduler: ReviewScheduler):
        self.store = store
        self.scheduler = scheduler

    async def ensure_initialized(
        self,
        learner_id: str,
        item_ids: Iterable[str],
        now: Optional[datetime] = None,
    ) -> list[ProgressRecord]:
        """
        Create NEW, immediately-due records for items that have none.

        Idempotent: items that already have a record are left untouched,
        including when a concurrent caller creates the record first.

        Returns:
            The records created by this call
        """
        now = now or self.scheduler.clock.now()
        created = []

        for item_id in dict.fromkeys(item_ids):
            if await self.store.get(learner_id, item_id) is not None:
                continue
            try:
                record = await self.store.upsert(
                    self.scheduler.new_record(learner_id, item_id, now)
                )
            except ConcurrencyConflictError:
                # Someone else initialized it between our read and write.
                continue
            created.append(record)

        if created:
            logger.info(f"Initialized {len(created)} progress records for learner {learner_id}")
        return created

    async def due_items(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[ProgressRecord]:
        """Non-retired records with next_review_at <= now, most overdue first."""
        now = now or self.scheduler.clock.now()
        return await self.store.query_due(learner_id, item_ids, now, limit=limit)

    async def count_due(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Number of due records, ignoring any page limit."""
        now = now or self.scheduler.clock.now()
        return await self.store.count_due(learner_id, item_ids, now)

    async def mastered_items(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]] = None,
    ) -> list[ProgressRecord]:
        """Retired records, most recently mastered first."""
        return await self.store.query_retired(learner_id, item_ids)
