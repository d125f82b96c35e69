"""
Study Session Service

Finishes a study session: records its answers, then decides whether the
learner's study set should grow.

Expansion rules:
1. ``add_new_items`` in the request always expands
2. Otherwise, with ``auto_expand`` on, the set expands once the number of
   mastered items in it reaches ``mastery_count_threshold``

Mastered means retired. ``mastery_interval_threshold`` widens that to items
whose interval has reached the given number of units.

Configuration hierarchy:
1. SessionOptions in the request (highest priority)
2. SESSION_* settings

Usage:
    from kanji_srs.services.learning.session_service import SessionService

    service = SessionService(spaced_rep_service, catalog, item_supply)

    result = await service.complete_session(
        "learner-1",
        "deck-1",
        SessionCompleteRequest(outcomes=[...], options=SessionOptions(add_new_items=True)),
    )
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from kanji_srs.config.settings import Settings, get_settings
from kanji_srs.middleware.error_handling import SupplyExhaustedError
from kanji_srs.models.learning import (
    ExpansionResult,
    ProgressResponse,
    SessionCompleteRequest,
    SessionCompleteResponse,
    SessionOptions,
)
from kanji_srs.services.learning.catalog import ItemCatalog
from kanji_srs.services.learning.item_supply import ItemSupply
from kanji_srs.services.learning.scheduler import ProgressRecord
from kanji_srs.services.learning.spaced_rep_service import SpacedRepService

logger = logging.getLogger(__name__)

REASON_REQUESTED = "requested"
REASON_MASTERY_THRESHOLD = "mastery_threshold"


class SessionService:
    """
    Session completion and study-set expansion.

    Answers are committed before expansion is attempted, so a failed
    expansion never rolls back the learner's progress.
    """

    def __init__(
        self,
        spaced_rep_service: SpacedRepService,
        catalog: ItemCatalog,
        item_supply: ItemSupply,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize session service.

        Args:
            spaced_rep_service: Records answers and selects reviews
            catalog: Study-set membership
            item_supply: Source of new items for expansion
            settings: Defaults for unset options (defaults to app settings)
        """
        self.spaced_rep = spaced_rep_service
        self.catalog = catalog
        self.item_supply = item_supply
        self.settings = settings or get_settings()

    # =========================================================================
    # Main Entry Point
    # =========================================================================

    async def complete_session(
        self,
        learner_id: str,
        item_set_id: str,
        request: SessionCompleteRequest,
        now: Optional[datetime] = None,
    ) -> SessionCompleteResponse:
        """
        Record a session's answers and expand the study set if warranted.

        Args:
            learner_id: Learner who studied
            item_set_id: Study set the session drew from
            request: Answers and expansion options
            now: Completion time (defaults to the clock)

        Returns:
            SessionCompleteResponse with updated records, expansion outcome
            and the set's due list

        Raises:
            NotFoundError: If the set is not the learner's, or an answered item
                is not in the catalog
            ConcurrencyConflictError: If a record changed while answers were
                being recorded
        """
        now = now or self.spaced_rep.scheduler.clock.now()
        options = request.options

        study_set = await self.catalog.get_study_set(item_set_id, learner_id)

        updated: list[ProgressRecord] = []
        if request.outcomes:
            updated = await self.spaced_rep.submit_answers(learner_id, request.outcomes, now)

        mastered_count = await self._count_mastered(
            learner_id, study_set.item_ids, options.mastery_interval_threshold
        )

        expansion = ExpansionResult()
        reason = self._expansion_reason(options, mastered_count)
        if reason is not None:
            expansion = await self._expand(
                learner_id, item_set_id, study_set.item_ids, options, reason, now
            )

        due = await self.spaced_rep.get_due_items(learner_id, item_set_id=item_set_id, now=now)

        logger.info(
            f"Completed session for learner {learner_id} on set {item_set_id}: "
            f"{len(updated)} answers, {mastered_count} mastered, "
            f"{len(expansion.added_item_ids)} items added, {len(due)} due"
        )

        return SessionCompleteResponse(
            learner_id=learner_id,
            item_set_id=item_set_id,
            updated=[ProgressResponse.from_record(r) for r in updated],
            mastered_count=mastered_count,
            expansion=expansion,
            due_items=[ProgressResponse.from_record(r) for r in due],
            completed_at=now,
        )

    # =========================================================================
    # Expansion
    # =========================================================================

    async def _count_mastered(
        self,
        learner_id: str,
        item_ids: list[str],
        interval_threshold: Optional[int],
    ) -> int:
        if not item_ids:
            return 0
        records = await self.spaced_rep.store.list_for_learner(learner_id, item_ids)
        return sum(1 for r in records if self._is_mastered(r, interval_threshold))

    @staticmethod
    def _is_mastered(record: ProgressRecord, interval_threshold: Optional[int]) -> bool:
        if record.is_retired:
            return True
        return interval_threshold is not None and record.interval >= interval_threshold

    def _expansion_reason(self, options: SessionOptions, mastered_count: int) -> Optional[str]:
        if options.add_new_items:
            return REASON_REQUESTED

        auto_expand = (
            options.auto_expand
            if options.auto_expand is not None
            else self.settings.SESSION_AUTO_EXPAND
        )
        threshold = (
            options.mastery_count_threshold or self.settings.SESSION_MASTERY_COUNT_THRESHOLD
        )
        if auto_expand and mastered_count >= threshold:
            return REASON_MASTERY_THRESHOLD
        return None

    async def _expand(
        self,
        learner_id: str,
        item_set_id: str,
        current_ids: list[str],
        options: SessionOptions,
        reason: str,
        now: datetime,
    ) -> ExpansionResult:
        count = options.new_item_count or self.settings.SESSION_NEW_ITEM_COUNT
        result = ExpansionResult(triggered=True, reason=reason, requested_count=count)

        try:
            items = await self.item_supply.supply_items(exclude_ids=current_ids, count=count)
        except SupplyExhaustedError as e:
            logger.info(f"Study set {item_set_id} not expanded: {e.message}")
            result.error = e.message
            return result

        added = await self.catalog.add_items_to_set(item_set_id, [item.id for item in items])
        await self.spaced_rep.initialize_items(learner_id, added, now)
        result.added_item_ids = added

        logger.info(
            f"Expanded study set {item_set_id} with {len(added)} items "
            f"(reason={reason}, requested={count})"
        )
        return result
