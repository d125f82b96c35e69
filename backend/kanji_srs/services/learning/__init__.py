"""
Learning System Services

Services for the interval-table spaced repetition scheduler.

Modules:
- intervals: Interval lookup table
- clock: Time source and interval-to-timestamp conversion (with test acceleration)
- scheduler: Answer transition state machine
- progress_store: Progress record persistence with optimistic concurrency
- catalog: Item catalog and study sets
- item_supply: New-item picking for study-set expansion
- review_selection: Due/mastered queries and lazy initialization
- spaced_rep_service: Caller-facing review operations
- session_service: Session completion and study-set expansion

Usage:
    from kanji_srs.services.learning import (
        SpacedRepService,
        SessionService,
        create_scheduler,
    )
"""

from kanji_srs.services.learning.catalog import (
    InMemoryItemCatalog,
    Item,
    ItemCatalog,
    SqlAlchemyItemCatalog,
    StudySetInfo,
)
from kanji_srs.services.learning.clock import FAR_FUTURE, ReviewClock, create_clock
from kanji_srs.services.learning.intervals import IntervalTable
from kanji_srs.services.learning.item_supply import ItemSupply, LeveledItemSupply
from kanji_srs.services.learning.progress_store import (
    InMemoryProgressStore,
    ProgressStore,
    SqlAlchemyProgressStore,
)
from kanji_srs.services.learning.review_selection import ReviewSelector
from kanji_srs.services.learning.scheduler import (
    RETIRED_INTERVAL,
    ProgressRecord,
    ReviewScheduler,
    create_scheduler,
    get_scheduler,
)
from kanji_srs.services.learning.session_service import SessionService
from kanji_srs.services.learning.spaced_rep_service import SpacedRepService

__all__ = [
    # Scheduling
    "IntervalTable",
    "ReviewClock",
    "create_clock",
    "FAR_FUTURE",
    "ProgressRecord",
    "ReviewScheduler",
    "create_scheduler",
    "get_scheduler",
    "RETIRED_INTERVAL",
    # Storage
    "ProgressStore",
    "InMemoryProgressStore",
    "SqlAlchemyProgressStore",
    "ItemCatalog",
    "InMemoryItemCatalog",
    "SqlAlchemyItemCatalog",
    "Item",
    "StudySetInfo",
    "ItemSupply",
    "LeveledItemSupply",
    # Services
    "ReviewSelector",
    "SpacedRepService",
    "SessionService",
]
