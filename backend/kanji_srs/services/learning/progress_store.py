"""
Progress Record Store

Persistence for ProgressRecords keyed by (learner_id, item_id).

The scheduler needs read-modify-write of a single record to be atomic.
Both stores implement it as compare-and-swap on ``version``:

    record = await store.get(learner, item)        # version N (0 if absent)
    updated = scheduler.apply_answer(record, ...)  # still version N
    saved = await store.upsert(updated)            # version N+1, or conflict

``upsert`` raises ConcurrencyConflictError if another writer got there
first. Stores never retry; callers reload and reapply.

Implementations:
- InMemoryProgressStore: process-local dict guarded by an asyncio.Lock
- SqlAlchemyProgressStore: learner_item_progress table, mapper version counter
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from kanji_srs.db.models_learning import LearnerItemProgress
from kanji_srs.enums.learning import ProgressState
from kanji_srs.middleware.error_handling import ConcurrencyConflictError
from kanji_srs.services.learning.scheduler import ProgressRecord

logger = logging.getLogger(__name__)


class ProgressStore(ABC):
    """Abstract progress record store."""

    @abstractmethod
    async def get(self, learner_id: str, item_id: str) -> Optional[ProgressRecord]:
        """Return the record for the pair, or None if it was never created."""
        pass

    @abstractmethod
    async def upsert(self, record: ProgressRecord) -> ProgressRecord:
        """
        Insert or update a record atomically.

        A record with version 0 is inserted; any other record replaces the
        stored one only if the stored version still equals record.version.

        Returns:
            The stored record with its version incremented

        Raises:
            ConcurrencyConflictError: If the stored version moved on, or a
                version-0 record collides with an existing row
        """
        pass

    @abstractmethod
    async def query_due(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]],
        now: datetime,
        limit: Optional[int] = None,
    ) -> list[ProgressRecord]:
        """Non-retired records due at ``now``, most overdue first."""
        pass

    @abstractmethod
    async def count_due(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]],
        now: datetime,
    ) -> int:
        """Number of records query_due would return without a limit."""
        pass

    @abstractmethod
    async def query_retired(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]],
    ) -> list[ProgressRecord]:
        """Retired records, most recently updated first."""
        pass

    @abstractmethod
    async def list_for_learner(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]] = None,
    ) -> list[ProgressRecord]:
        """All of a learner's records, ordered by item id."""
        pass


def _conflict(learner_id: str, item_id: str, reason: str) -> ConcurrencyConflictError:
    # Callers decide whether a conflict matters; ones that reach a request are
    # logged at WARNING by the error handling middleware.
    logger.debug(f"Progress conflict for learner {learner_id}, item {item_id}: {reason}")
    return ConcurrencyConflictError(
        f"Progress for item {item_id} was modified concurrently; reload and retry",
        details={"learner_id": learner_id, "item_id": item_id, "reason": reason},
    )


# =============================================================================
# In-memory store
# =============================================================================


class InMemoryProgressStore(ProgressStore):
    """
    Process-local store.

    Used by tests and single-process demos. The lock makes each
    compare-and-swap atomic with respect to other coroutines.
    """

    def __init__(self, records: Optional[Iterable[ProgressRecord]] = None):
        self._records: dict[tuple[str, str], ProgressRecord] = {}
        self._lock = asyncio.Lock()
        for record in records or ():
            self._records[record.key] = replace(record, version=max(record.version, 1))

    async def get(self, learner_id: str, item_id: str) -> Optional[ProgressRecord]:
        return self._records.get((learner_id, item_id))

    async def upsert(self, record: ProgressRecord) -> ProgressRecord:
        async with self._lock:
            current = self._records.get(record.key)
            if record.version == 0:
                if current is not None:
                    raise _conflict(record.learner_id, record.item_id, "already exists")
            elif current is None:
                raise _conflict(record.learner_id, record.item_id, "record missing")
            elif current.version != record.version:
                raise _conflict(
                    record.learner_id,
                    record.item_id,
                    f"version {record.version} != stored {current.version}",
                )

            stored = replace(record, version=record.version + 1)
            self._records[record.key] = stored
            return stored

    def _select(
        self, learner_id: str, item_ids: Optional[Iterable[str]]
    ) -> list[ProgressRecord]:
        wanted = set(item_ids) if item_ids is not None else None
        return [
            r
            for r in self._records.values()
            if r.learner_id == learner_id and (wanted is None or r.item_id in wanted)
        ]

    async def query_due(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]],
        now: datetime,
        limit: Optional[int] = None,
    ) -> list[ProgressRecord]:
        due = [r for r in self._select(learner_id, item_ids) if r.is_due(now)]
        due.sort(key=lambda r: (r.next_review_at, r.item_id))
        return due[:limit] if limit is not None else due

    async def count_due(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]],
        now: datetime,
    ) -> int:
        return sum(1 for r in self._select(learner_id, item_ids) if r.is_due(now))

    async def query_retired(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]],
    ) -> list[ProgressRecord]:
        retired = [r for r in self._select(learner_id, item_ids) if r.is_retired]
        retired.sort(key=lambda r: r.item_id)
        retired.sort(key=lambda r: r.updated_at, reverse=True)
        return retired

    async def list_for_learner(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]] = None,
    ) -> list[ProgressRecord]:
        return sorted(self._select(learner_id, item_ids), key=lambda r: r.item_id)


# =============================================================================
# SQLAlchemy store
# =============================================================================


class SqlAlchemyProgressStore(ProgressStore):
    """
    Store backed by the learner_item_progress table.

    Each upsert commits on its own, so a transition is either durably
    applied or not applied at all. Concurrent writers are detected by the
    uq_learner_item constraint (inserts) and the mapper version counter
    (updates).
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, learner_id: str, item_id: str) -> Optional[LearnerItemProgress]:
        result = await self.db.execute(
            select(LearnerItemProgress)
            .where(
                LearnerItemProgress.learner_id == learner_id,
                LearnerItemProgress.item_id == item_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, learner_id: str, item_id: str) -> Optional[ProgressRecord]:
        row = await self._load(learner_id, item_id)
        return self._to_record(row) if row is not None else None

    async def upsert(self, record: ProgressRecord) -> ProgressRecord:
        if record.version == 0:
            row = LearnerItemProgress(learner_id=record.learner_id, item_id=record.item_id)
            self._copy_fields(record, row)
            self.db.add(row)
        else:
            row = await self._load(record.learner_id, record.item_id)
            if row is None:
                raise _conflict(record.learner_id, record.item_id, "record missing")
            if row.version != record.version:
                raise _conflict(
                    record.learner_id,
                    record.item_id,
                    f"version {record.version} != stored {row.version}",
                )
            self._copy_fields(record, row)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise _conflict(record.learner_id, record.item_id, "already exists")
        except StaleDataError:
            await self.db.rollback()
            raise _conflict(record.learner_id, record.item_id, "stale version")

        await self.db.refresh(row)
        return self._to_record(row)

    async def query_due(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]],
        now: datetime,
        limit: Optional[int] = None,
    ) -> list[ProgressRecord]:
        query = select(LearnerItemProgress).where(
            *self._due_conditions(learner_id, item_ids, now)
        )
        query = query.order_by(
            LearnerItemProgress.next_review_at.asc(), LearnerItemProgress.item_id.asc()
        )
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return [self._to_record(row) for row in result.scalars().all()]

    async def count_due(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]],
        now: datetime,
    ) -> int:
        query = (
            select(func.count())
            .select_from(LearnerItemProgress)
            .where(*self._due_conditions(learner_id, item_ids, now))
        )
        result = await self.db.execute(query)
        return result.scalar_one()

    @staticmethod
    def _due_conditions(
        learner_id: str, item_ids: Optional[Iterable[str]], now: datetime
    ) -> list:
        conditions = [
            LearnerItemProgress.learner_id == learner_id,
            LearnerItemProgress.state != ProgressState.RETIRED.value,
            LearnerItemProgress.next_review_at <= now,
        ]
        if item_ids is not None:
            conditions.append(LearnerItemProgress.item_id.in_(list(item_ids)))
        return conditions

    async def query_retired(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]],
    ) -> list[ProgressRecord]:
        query = select(LearnerItemProgress).where(
            LearnerItemProgress.learner_id == learner_id,
            LearnerItemProgress.state == ProgressState.RETIRED.value,
        )
        if item_ids is not None:
            query = query.where(LearnerItemProgress.item_id.in_(list(item_ids)))

        query = query.order_by(
            LearnerItemProgress.updated_at.desc(), LearnerItemProgress.item_id.asc()
        )
        result = await self.db.execute(query)
        return [self._to_record(row) for row in result.scalars().all()]

    async def list_for_learner(
        self,
        learner_id: str,
        item_ids: Optional[Iterable[str]] = None,
    ) -> list[ProgressRecord]:
        query = select(LearnerItemProgress).where(
            LearnerItemProgress.learner_id == learner_id
        )
        if item_ids is not None:
            query = query.where(LearnerItemProgress.item_id.in_(list(item_ids)))

        result = await self.db.execute(query.order_by(LearnerItemProgress.item_id.asc()))
        return [self._to_record(row) for row in result.scalars().all()]

    @staticmethod
    def _copy_fields(record: ProgressRecord, row: LearnerItemProgress) -> None:
        row.state = record.state.value
        row.interval = record.interval
        row.consecutive_correct = record.consecutive_correct
        row.next_review_at = record.next_review_at
        row.last_reviewed_at = record.last_reviewed_at
        row.right_count = record.right_count
        row.wrong_count = record.wrong_count
        row.created_at = record.created_at
        row.updated_at = record.updated_at

    @staticmethod
    def _to_record(row: LearnerItemProgress) -> ProgressRecord:
        """Convert database model to a ProgressRecord."""
        return ProgressRecord(
            learner_id=row.learner_id,
            item_id=row.item_id,
            state=ProgressState(row.state or ProgressState.NEW.value),
            interval=row.interval,
            consecutive_correct=row.consecutive_correct or 0,
            next_review_at=row.next_review_at,
            last_reviewed_at=row.last_reviewed_at,
            right_count=row.right_count or 0,
            wrong_count=row.wrong_count or 0,
            created_at=row.created_at,
            updated_at=row.updated_at,
            version=row.version,
        )
