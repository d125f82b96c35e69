"""
Item Supply

Picks new items for a study set when it expands.

LeveledItemSupply walks the JLPT levels from easiest to hardest
(N5 → N4 → N3 → N2 → N1), sampling at random within a level, until it
has collected the requested number of items. It returns fewer items if the
catalog runs short and raises SupplyExhaustedError if it finds none.

Usage:
    supply = LeveledItemSupply(catalog)
    items = await supply.supply_items(exclude_ids=current_ids, count=5)
"""

import logging
import random
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from kanji_srs.middleware.error_handling import SupplyExhaustedError, ValidationError
from kanji_srs.services.learning.catalog import Item, ItemCatalog

logger = logging.getLogger(__name__)

JLPT_LEVELS_EASIEST_FIRST: tuple[int, ...] = (5, 4, 3, 2, 1)


class ItemSupply(ABC):
    """Source of items a learner has not studied yet."""

    @abstractmethod
    async def supply_items(self, exclude_ids: Iterable[str], count: int) -> list[Item]:
        """
        Return up to ``count`` items whose ids are not in ``exclude_ids``.

        Raises:
            SupplyExhaustedError: If no item can be supplied
            ValidationError: If count is not positive
        """
        pass


class LeveledItemSupply(ItemSupply):
    """
    Level-cascading random supply.

    Attributes:
        catalog: Item catalog to draw from
        levels: Levels to walk, in order
        rng: Random source; seed it for reproducible picks
    """

    def __init__(
        self,
        catalog: ItemCatalog,
        levels: Iterable[int] = JLPT_LEVELS_EASIEST_FIRST,
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog
        self.levels = tuple(levels)
        self.rng = rng or random.Random()

    async def supply_items(self, exclude_ids: Iterable[str], count: int) -> list[Item]:
        if count < 1:
            raise ValidationError(f"Requested item count must be positive, got {count}")

        excluded = set(exclude_ids)
        excluded_count = len(excluded)
        selected: list[Item] = []

        for level in self.levels:
            remaining = count - len(selected)
            if remaining <= 0:
                break

            available = await self.catalog.list_items(level=level, exclude_ids=excluded)
            if not available:
                continue

            picked = self.rng.sample(available, min(remaining, len(available)))
            selected.extend(picked)
            excluded.update(item.id for item in picked)

        if not selected:
            raise SupplyExhaustedError(
                "No new items available to add",
                details={"requested": count, "excluded": excluded_count},
            )

        if len(selected) < count:
            logger.info(f"Item supply short: requested {count}, found {len(selected)}")
        return selected
