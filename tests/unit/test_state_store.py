"""
Unit tests for the in-memory store and the outbox wrapper.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.review.errors import PersistenceFailed
from src.review.models import ReviewState
from src.review.state_store import InMemoryStateStore, OutboxStateStore, as_utc


def _state(interval: int) -> ReviewState:
    return ReviewState(
        interval=interval,
        next_review_at=datetime(2024, 3, 1, tzinfo=timezone.utc) + timedelta(days=interval),
        streak=1,
    )


class FlakyStore(InMemoryStateStore):
    """In-memory store whose writes fail while ``failing`` is set."""

    def __init__(self):
        super().__init__()
        self.failing = False
        self.writes = []

    async def put(self, user_id, item_id, state):
        if self.failing:
            raise ConnectionError("database unreachable")
        self.writes.append(item_id)
        await super().put(user_id, item_id, state)


class TestInMemoryStateStore:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self):
        assert await InMemoryStateStore().get("u1", "item-01") is None

    @pytest.mark.asyncio
    async def test_put_and_get(self):
        store = InMemoryStateStore()

        await store.put("u1", "item-01", _state(3))

        assert await store.get("u1", "item-01") == _state(3)

    @pytest.mark.asyncio
    async def test_get_all_is_per_user(self):
        store = InMemoryStateStore()
        await store.put("u1", "a", _state(1))
        await store.put("u1", "b", _state(3))
        await store.put("u2", "a", _state(8))

        assert await store.get_all("u1") == {"a": _state(1), "b": _state(3)}
        assert await store.get_all("u3") == {}

    @pytest.mark.asyncio
    async def test_mistake_tally(self):
        store = InMemoryStateStore()
        await store.record_mistake("u1", "a")
        await store.record_mistake("u1", "a")
        await store.record_mistake("u2", "b")

        assert await store.get_mistakes("u1") == {"a": 2}


class TestOutboxStateStore:
    @pytest.mark.asyncio
    async def test_failed_write_raises_and_is_kept(self):
        inner = FlakyStore()
        inner.failing = True
        outbox = OutboxStateStore(inner, max_size=10)

        with pytest.raises(PersistenceFailed) as exc_info:
            await outbox.put("u1", "a", _state(1))

        assert exc_info.value.item_id == "a"
        assert outbox.pending_count == 1
        assert await inner.get("u1", "a") is None

    @pytest.mark.asyncio
    async def test_pending_entries_visible_to_reads(self):
        inner = FlakyStore()
        outbox = OutboxStateStore(inner, max_size=10)
        await outbox.put("u1", "a", _state(1))
        inner.failing = True
        with pytest.raises(PersistenceFailed):
            await outbox.put("u1", "a", _state(3))

        assert await outbox.get("u1", "a") == _state(3)
        assert (await outbox.get_all("u1"))["a"] == _state(3)

    @pytest.mark.asyncio
    async def test_next_successful_write_flushes(self):
        inner = FlakyStore()
        inner.failing = True
        outbox = OutboxStateStore(inner, max_size=10)
        for item_id in ("a", "b"):
            with pytest.raises(PersistenceFailed):
                await outbox.put("u1", item_id, _state(1))

        inner.failing = False
        await outbox.put("u1", "c", _state(3))

        assert outbox.pending_count == 0
        assert inner.writes == ["c", "a", "b"]
        assert set(await inner.get_all("u1")) == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_newer_state_replaces_pending_one(self):
        inner = FlakyStore()
        outbox = OutboxStateStore(inner, max_size=10)
        inner.failing = True
        with pytest.raises(PersistenceFailed):
            await outbox.put("u1", "a", _state(1))

        inner.failing = False
        await outbox.put("u1", "a", _state(3))

        assert outbox.pending_count == 0
        assert await inner.get("u1", "a") == _state(3)

    @pytest.mark.asyncio
    async def test_full_outbox_drops_oldest(self):
        inner = FlakyStore()
        inner.failing = True
        outbox = OutboxStateStore(inner, max_size=2)
        for item_id in ("a", "b", "c"):
            with pytest.raises(PersistenceFailed):
                await outbox.put("u1", item_id, _state(1))

        assert outbox.pending_count == 2
        assert await outbox.get("u1", "a") is None
        assert await outbox.get("u1", "c") == _state(1)

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            OutboxStateStore(InMemoryStateStore(), max_size=0)


class TestAsUtc:
    def test_naive_is_taken_as_utc(self):
        assert as_utc(datetime(2024, 1, 1, 12)) == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def test_aware_is_converted(self):
        plus_two = timezone(timedelta(hours=2))

        converted = as_utc(datetime(2024, 1, 1, 12, tzinfo=plus_two))

        assert converted.hour == 10
        assert converted.tzinfo == timezone.utc

    def test_none(self):
        assert as_utc(None) is None


class TestLearnedItems:
    @pytest.mark.asyncio
    async def test_learned_in_order_and_idempotent(self):
        store = InMemoryStateStore()
        await store.mark_learned("u1", "b")
        await store.mark_learned("u1", "a")
        await store.mark_learned("u1", "b")

        assert await store.get_learned("u1") == ["b", "a"]
        assert await store.get_learned("u2") == []

    @pytest.mark.asyncio
    async def test_outbox_passes_learned_through(self):
        inner = InMemoryStateStore()
        outbox = OutboxStateStore(inner, max_size=2)

        await outbox.mark_learned("u1", "a")

        assert await inner.get_learned("u1") == ["a"]
        assert await outbox.get_learned("u1") == ["a"]
