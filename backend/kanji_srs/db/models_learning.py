"""
SQLAlchemy Database Models for the Review Scheduler

Tables:
- items: Catalog of studyable items (kanji) with their JLPT level
- study_sets: A learner's set of items under study (a deck)
- study_set_items: Membership of items in study sets
- learner_item_progress: Scheduling state per (learner, item) pair

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    Services work with the plain dataclasses in
    kanji_srs.services.learning (ProgressRecord, Item); the stores in
    progress_store.py and catalog.py convert between the two.
"""

from datetime import datetime, timezone
from typing import List, Optional


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kanji_srs.db.base import Base


# ===========================================
# Item Catalog & Study Sets
# ===========================================


class Item(Base):
    """
    A studyable item.

    Attributes:
        id: Opaque string identifier.
        character: The kanji (or other prompt) shown to the learner.
        meaning: Primary meaning, shown on the answer side.
        level: JLPT level, 5 (N5, easiest) down to 1 (N1, hardest).
    """

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    character: Mapped[str] = mapped_column(String(32))
    meaning: Mapped[Optional[str]] = mapped_column(String(255))
    level: Mapped[int] = mapped_column(Integer, index=True)


class StudySet(Base):
    """
    A learner's study set (deck).

    Attributes:
        id: Opaque string identifier.
        learner_id: Owner of the set.
        name: Display name.
        created_at: Creation timestamp.
        members: Items in the set, in insertion order.
    """

    __tablename__ = "study_sets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    learner_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255), default="My Deck")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    members: Mapped[List["StudySetItem"]] = relationship(
        back_populates="study_set",
        cascade="all, delete-orphan",
        order_by="StudySetItem.id",
    )


class StudySetItem(Base):
    """Membership of one item in one study set."""

    __tablename__ = "study_set_items"
    __table_args__ = (
        UniqueConstraint("study_set_id", "item_id", name="uq_study_set_item"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    study_set_id: Mapped[str] = mapped_column(ForeignKey("study_sets.id"), index=True)
    item_id: Mapped[str] = mapped_column(ForeignKey("items.id"))
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    study_set: Mapped["StudySet"] = relationship(back_populates="members")


# ===========================================
# Review Progress
# ===========================================


class LearnerItemProgress(Base):
    """
    Scheduling state for one (learner, item) pair.

    At most one row exists per pair (uq_learner_item). Rows are updated
    with optimistic concurrency: ``version`` is the mapper's version
    counter, so an UPDATE whose version no longer matches raises
    StaleDataError instead of silently overwriting a concurrent write.

    Attributes:
        state: new, learning or retired.
        interval: Current interval in time-units (999999 once retired).
        consecutive_correct: Correct answers since the last miss.
        next_review_at: When the item is next due.
        last_reviewed_at: Most recent answer.
        right_count / wrong_count: Lifetime answer counters.
        version: Optimistic concurrency counter.
    """

    __tablename__ = "learner_item_progress"
    __table_args__ = (
        UniqueConstraint("learner_id", "item_id", name="uq_learner_item"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    learner_id: Mapped[str] = mapped_column(String(64), index=True)
    item_id: Mapped[str] = mapped_column(ForeignKey("items.id"), index=True)

    state: Mapped[str] = mapped_column(String(20), default="new")
    interval: Mapped[int] = mapped_column(Integer, default=1)
    consecutive_correct: Mapped[int] = mapped_column(Integer, default=0)

    next_review_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, index=True
    )
    last_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    right_count: Mapped[int] = mapped_column(Integer, default=0)
    wrong_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
