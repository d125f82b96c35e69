"""
Unit tests for review selection and lazy initialization.
"""

import logging
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from kanji_srs.enums.learning import ProgressState
from kanji_srs.middleware.error_handling import ConcurrencyConflictError
from kanji_srs.services.learning.review_selection import ReviewSelector

from tests.conftest import LEARNER, NOW


@pytest.fixture
def selector(store, scheduler):
    return ReviewSelector(store, scheduler)


class TestEnsureInitialized:
    """Tests for ensure_initialized."""

    @pytest.mark.asyncio
    async def test_creates_due_new_records(self, selector, store):
        created = await selector.ensure_initialized(LEARNER, ["k5-01", "k5-02"], NOW)

        assert [r.item_id for r in created] == ["k5-01", "k5-02"]
        record = await store.get(LEARNER, "k5-01")
        assert record.state == ProgressState.NEW
        assert record.next_review_at == NOW
        assert record.version == 1

    @pytest.mark.asyncio
    async def test_idempotent(self, selector, store):
        await selector.ensure_initialized(LEARNER, ["k5-01"], NOW)
        again = await selector.ensure_initialized(LEARNER, ["k5-01", "k5-01"], NOW + timedelta(days=1))

        assert again == []
        assert len(await store.list_for_learner(LEARNER)) == 1
        assert (await store.get(LEARNER, "k5-01")).next_review_at == NOW

    @pytest.mark.asyncio
    async def test_leaves_answered_records_alone(self, selector, store, scheduler):
        answered = scheduler.apply_answer(None, LEARNER, "k5-01", True, NOW)
        answered = scheduler.apply_answer(answered, LEARNER, "k5-01", True, NOW)
        await store.upsert(answered)

        await selector.ensure_initialized(LEARNER, ["k5-01"], NOW)

        assert (await store.get(LEARNER, "k5-01")).interval == 2

    @pytest.mark.asyncio
    async def test_racing_creator_treated_as_initialized(self, selector, store):
        store.upsert = AsyncMock(side_effect=ConcurrencyConflictError("raced"))

        created = await selector.ensure_initialized(LEARNER, ["k5-01"], NOW)
        assert created == []

    @pytest.mark.asyncio
    async def test_racing_creator_does_not_warn(self, selector, store, scheduler, caplog):
        await store.upsert(scheduler.new_record(LEARNER, "k5-01", NOW))
        # The other writer's insert lands after our read.
        store.get = AsyncMock(return_value=None)

        with caplog.at_level(logging.DEBUG, logger="kanji_srs"):
            created = await selector.ensure_initialized(LEARNER, ["k5-01"], NOW)

        assert created == []
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
        assert any("Progress conflict" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_defaults_to_clock_now(self, selector, store):
        await selector.ensure_initialized(LEARNER, ["k5-01"])
        assert (await store.get(LEARNER, "k5-01")).created_at == NOW


class TestDueAndMastered:
    """Due and mastered partition the non-future records."""

    @pytest.mark.asyncio
    async def test_partition(self, selector, store, scheduler):
        retired = scheduler.simulate(LEARNER, "k5-01", 11, NOW)
        learning = scheduler.simulate(LEARNER, "k5-02", 3, NOW)
        for record in (retired, learning):
            await store.upsert(record)
        await selector.ensure_initialized(LEARNER, ["k5-03"], NOW)

        later = NOW + timedelta(days=4)
        due = {r.item_id for r in await selector.due_items(LEARNER, now=later)}
        mastered = {r.item_id for r in await selector.mastered_items(LEARNER)}

        assert due == {"k5-02", "k5-03"}
        assert mastered == {"k5-01"}
        assert not due & mastered

    @pytest.mark.asyncio
    async def test_not_yet_due_excluded(self, selector, store, scheduler):
        await store.upsert(scheduler.simulate(LEARNER, "k5-02", 3, NOW))

        assert await selector.due_items(LEARNER, now=NOW + timedelta(days=3)) == []

    @pytest.mark.asyncio
    async def test_due_limit(self, selector):
        await selector.ensure_initialized(LEARNER, ["k5-01", "k5-02", "k5-03"], NOW)
        assert len(await selector.due_items(LEARNER, now=NOW, limit=2)) == 2

    @pytest.mark.asyncio
    async def test_item_filter(self, selector):
        await selector.ensure_initialized(LEARNER, ["k5-01", "k5-02"], NOW)
        due = await selector.due_items(LEARNER, ["k5-02"], now=NOW)
        assert [r.item_id for r in due] == ["k5-02"]
