"""
Item Catalog & Study Sets

Read access to the item catalog and to learners' study sets, plus the one
write the scheduler needs: adding items to a study set when it expands.

Implementations:
- InMemoryItemCatalog: seeded from lists, used by tests and demos
- SqlAlchemyItemCatalog: items / study_sets / study_set_items tables
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kanji_srs.db.models_learning import Item as ItemRow
from kanji_srs.db.models_learning import StudySet as StudySetRow
from kanji_srs.db.models_learning import StudySetItem
from kanji_srs.middleware.error_handling import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Item:
    """A studyable item. ``level`` is the JLPT level (5 = N5 ... 1 = N1)."""

    id: str
    character: str
    meaning: Optional[str] = None
    level: int = 5


@dataclass
class StudySetInfo:
    """A learner's study set and its members in insertion order."""

    id: str
    learner_id: str
    name: str = "My Deck"
    item_ids: list[str] = field(default_factory=list)


class ItemCatalog(ABC):
    """Abstract item catalog and study-set repository."""

    @abstractmethod
    async def get_item(self, item_id: str) -> Optional[Item]:
        pass

    async def has_item(self, item_id: str) -> bool:
        return await self.get_item(item_id) is not None

    @abstractmethod
    async def list_items(
        self,
        level: Optional[int] = None,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> list[Item]:
        """Catalog items, optionally restricted to a level, ordered by id."""
        pass

    @abstractmethod
    async def get_study_set(
        self, set_id: str, learner_id: Optional[str] = None
    ) -> StudySetInfo:
        """
        Load a study set.

        Args:
            set_id: Study set id
            learner_id: If given, the set must belong to this learner

        Raises:
            NotFoundError: If the set does not exist (or is not the learner's)
        """
        pass

    async def get_set_item_ids(
        self, set_id: str, learner_id: Optional[str] = None
    ) -> list[str]:
        """Member item ids of a study set, in the order they were added."""
        study_set = await self.get_study_set(set_id, learner_id)
        return study_set.item_ids

    @abstractmethod
    async def add_items_to_set(self, set_id: str, item_ids: Iterable[str]) -> list[str]:
        """
        Add items to a study set, skipping ones already in it.

        Returns:
            The ids that were actually added, in the given order
        """
        pass


def _set_not_found(set_id: str) -> NotFoundError:
    return NotFoundError(f"Study set {set_id} not found", details={"study_set_id": set_id})


# =============================================================================
# In-memory catalog
# =============================================================================


class InMemoryItemCatalog(ItemCatalog):
    """Catalog held in dicts."""

    def __init__(
        self,
        items: Optional[Iterable[Item]] = None,
        study_sets: Optional[Iterable[StudySetInfo]] = None,
    ):
        self._items: dict[str, Item] = {item.id: item for item in items or ()}
        self._sets: dict[str, StudySetInfo] = {s.id: s for s in study_sets or ()}

    def add_item(self, item: Item) -> None:
        self._items[item.id] = item

    def add_study_set(self, study_set: StudySetInfo) -> None:
        self._sets[study_set.id] = study_set

    async def get_item(self, item_id: str) -> Optional[Item]:
        return self._items.get(item_id)

    async def list_items(
        self,
        level: Optional[int] = None,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> list[Item]:
        excluded = set(exclude_ids or ())
        return sorted(
            (
                item
                for item in self._items.values()
                if (level is None or item.level == level) and item.id not in excluded
            ),
            key=lambda item: item.id,
        )

    async def get_study_set(
        self, set_id: str, learner_id: Optional[str] = None
    ) -> StudySetInfo:
        study_set = self._sets.get(set_id)
        if study_set is None or (learner_id is not None and study_set.learner_id != learner_id):
            raise _set_not_found(set_id)
        return StudySetInfo(
            id=study_set.id,
            learner_id=study_set.learner_id,
            name=study_set.name,
            item_ids=list(study_set.item_ids),
        )

    async def add_items_to_set(self, set_id: str, item_ids: Iterable[str]) -> list[str]:
        study_set = self._sets.get(set_id)
        if study_set is None:
            raise _set_not_found(set_id)

        added = []
        for item_id in item_ids:
            if item_id not in study_set.item_ids:
                study_set.item_ids.append(item_id)
                added.append(item_id)
        return added


# =============================================================================
# SQLAlchemy catalog
# =============================================================================


class SqlAlchemyItemCatalog(ItemCatalog):
    """Catalog backed by the items and study_sets tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_item(self, item_id: str) -> Optional[Item]:
        result = await self.db.execute(select(ItemRow).where(ItemRow.id == item_id))
        row = result.scalar_one_or_none()
        return self._to_item(row) if row is not None else None

    async def list_items(
        self,
        level: Optional[int] = None,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> list[Item]:
        query = select(ItemRow)
        if level is not None:
            query = query.where(ItemRow.level == level)
        excluded = list(exclude_ids or ())
        if excluded:
            query = query.where(ItemRow.id.not_in(excluded))

        result = await self.db.execute(query.order_by(ItemRow.id.asc()))
        return [self._to_item(row) for row in result.scalars().all()]

    async def get_study_set(
        self, set_id: str, learner_id: Optional[str] = None
    ) -> StudySetInfo:
        query = select(StudySetRow).where(StudySetRow.id == set_id)
        if learner_id is not None:
            query = query.where(StudySetRow.learner_id == learner_id)
        result = await self.db.execute(query)
        row = result.scalar_one_or_none()
        if row is None:
            raise _set_not_found(set_id)

        members = await self.db.execute(
            select(StudySetItem.item_id)
            .where(StudySetItem.study_set_id == set_id)
            .order_by(StudySetItem.id.asc())
        )
        return StudySetInfo(
            id=row.id,
            learner_id=row.learner_id,
            name=row.name,
            item_ids=list(members.scalars().all()),
        )

    async def add_items_to_set(self, set_id: str, item_ids: Iterable[str]) -> list[str]:
        """
        Add items to a study set, skipping ones already in it.

        All new members go in one commit. If a concurrent writer adds one
        of them first, the batch is rolled back and the members still
        missing are added one commit at a time.
        """
        wanted = list(dict.fromkeys(item_ids))
        study_set = await self.get_study_set(set_id)
        existing = set(study_set.item_ids)
        pending = [item_id for item_id in wanted if item_id not in existing]
        if not pending:
            return []

        for item_id in pending:
            self.db.add(StudySetItem(study_set_id=set_id, item_id=item_id))
        try:
            await self.db.commit()
            added = pending
        except IntegrityError:
            await self.db.rollback()
            logger.info(
                f"Study set {set_id} changed while adding items; retrying one at a time"
            )
            added = await self._add_missing_members(set_id, wanted)

        if added:
            logger.info(f"Added {len(added)} items to study set {set_id}")
        return added

    async def _add_missing_members(self, set_id: str, item_ids: list[str]) -> list[str]:
        existing = set(await self.get_set_item_ids(set_id))
        added = []
        for item_id in item_ids:
            if item_id in existing:
                continue
            self.db.add(StudySetItem(study_set_id=set_id, item_id=item_id))
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                continue
            added.append(item_id)
        return added

    @staticmethod
    def _to_item(row: ItemRow) -> Item:
        return Item(id=row.id, character=row.character, meaning=row.meaning, level=row.level)
