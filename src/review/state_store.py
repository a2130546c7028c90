"""
State stores for review scheduling.

Persists per (user, item):
- ReviewState (SM-2 interval, ease, streak, next review time)
- Mistake tally (count of wrong answers in mistake-correction batches)
- Learned items (words introduced through guided lessons, in order)

Stores:
- InMemoryStateStore: process-local dicts, used in tests and offline runs
- SQLStateStore: SQLAlchemy tables, SQLite by default
- OutboxStateStore: wrapper that keeps failed writes and retries them on
  the next successful write
"""

from __future__ import annotations

import asyncio
import threading
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol, TypeVar

from loguru import logger
from sqlalchemy import select

from src.db.database import create_db_engine, init_db, make_session_factory, session_scope
from src.db.models import LearnedItem, MistakeTally, ReviewStateRecord

from .errors import PersistenceFailed
from .models import ReviewState

StateKey = tuple[str, str]
T = TypeVar("T")


class StateStore(Protocol):
    """Durable storage keyed by (user, item)."""

    async def get(self, user_id: str, item_id: str) -> ReviewState | None:
        """Return the stored state, or None if the item was never rated."""
        ...

    async def put(self, user_id: str, item_id: str, state: ReviewState) -> None:
        """Store ``state``, raising PersistenceFailed if the write fails."""
        ...

    async def get_all(self, user_id: str) -> dict[str, ReviewState]:
        """Return every stored state of the user keyed by item id."""
        ...

    async def record_mistake(self, user_id: str, item_id: str) -> None:
        ...

    async def get_mistakes(self, user_id: str) -> dict[str, int]:
        ...

    async def mark_learned(self, user_id: str, item_id: str) -> None:
        """Record that a guided lesson introduced the item (idempotent)."""
        ...

    async def get_learned(self, user_id: str) -> list[str]:
        """Return learned item ids in the order they were learned."""
        ...


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize to an aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemoryStateStore:
    """Dict-backed store. Nothing survives the process."""

    def __init__(self) -> None:
        self._states: dict[StateKey, ReviewState] = {}
        self._mistakes: dict[StateKey, int] = {}
        self._learned: dict[str, list[str]] = {}

    async def get(self, user_id: str, item_id: str) -> ReviewState | None:
        return self._states.get((user_id, item_id))

    async def put(self, user_id: str, item_id: str, state: ReviewState) -> None:
        self._states[(user_id, item_id)] = state

    async def get_all(self, user_id: str) -> dict[str, ReviewState]:
        return {item: state for (user, item), state in self._states.items() if user == user_id}

    async def record_mistake(self, user_id: str, item_id: str) -> None:
        key = (user_id, item_id)
        self._mistakes[key] = self._mistakes.get(key, 0) + 1

    async def get_mistakes(self, user_id: str) -> dict[str, int]:
        return {item: n for (user, item), n in self._mistakes.items() if user == user_id}

    async def mark_learned(self, user_id: str, item_id: str) -> None:
        learned = self._learned.setdefault(user_id, [])
        if item_id not in learned:
            learned.append(item_id)

    async def get_learned(self, user_id: str) -> list[str]:
        return list(self._learned.get(user_id, []))

    def close(self) -> None:
        pass


# =============================================================================
# SQL Store
# =============================================================================


class SQLStateStore:
    """
    SQLAlchemy-backed store.

    Database work is synchronous and runs in a worker thread so the event
    loop stays free while a write is in flight. One lock serializes those
    calls: the session schedules a write per rating, and in-memory SQLite
    shares a single connection between threads.
    """

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize the store and create missing tables.

        Args:
            database_url: SQLAlchemy URL (sqlite:///path or postgresql://...)
            echo: Log emitted SQL
        """
        self.engine = create_db_engine(database_url, echo=echo)
        self._session_factory = make_session_factory(self.engine)
        self._lock = threading.Lock()
        init_db(self.engine)

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        def locked() -> T:
            with self._lock:
                return func(*args)

        return await asyncio.to_thread(locked)

    # -------------------------------------------------------------------------
    # Review state
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_state(record: ReviewStateRecord) -> ReviewState:
        return ReviewState(
            interval=record.interval_days,
            next_review_at=as_utc(record.next_review_at),
            ease_factor=record.ease_factor,
            streak=record.streak,
        )

    def _get(self, user_id: str, item_id: str) -> ReviewState | None:
        with session_scope(self._session_factory) as session:
            record = session.get(ReviewStateRecord, (user_id, item_id))
            return self._to_state(record) if record is not None else None

    def _put(self, user_id: str, item_id: str, state: ReviewState) -> None:
        with session_scope(self._session_factory) as session:
            session.merge(
                ReviewStateRecord(
                    user_id=user_id,
                    item_id=item_id,
                    interval_days=state.interval,
                    next_review_at=as_utc(state.next_review_at),
                    ease_factor=state.ease_factor,
                    streak=state.streak,
                    updated_at=datetime.now(timezone.utc),
                )
            )

    def _get_all(self, user_id: str) -> dict[str, ReviewState]:
        with session_scope(self._session_factory) as session:
            records = session.scalars(
                select(ReviewStateRecord).where(ReviewStateRecord.user_id == user_id)
            )
            return {record.item_id: self._to_state(record) for record in records}

    async def get(self, user_id: str, item_id: str) -> ReviewState | None:
        return await self._call(self._get, user_id, item_id)

    async def put(self, user_id: str, item_id: str, state: ReviewState) -> None:
        try:
            await self._call(self._put, user_id, item_id, state)
        except Exception as e:  # Driver errors are not always wrapped by SQLAlchemy
            raise PersistenceFailed(user_id, item_id, e) from e
        logger.debug(f"Saved state {user_id}/{item_id}: interval={state.interval}")

    async def get_all(self, user_id: str) -> dict[str, ReviewState]:
        return await self._call(self._get_all, user_id)

    # -------------------------------------------------------------------------
    # Mistake tally
    # -------------------------------------------------------------------------

    def _record_mistake(self, user_id: str, item_id: str) -> None:
        with session_scope(self._session_factory) as session:
            tally = session.get(MistakeTally, (user_id, item_id))
            if tally is None:
                tally = MistakeTally(user_id=user_id, item_id=item_id, count=0)
                session.add(tally)
            tally.count += 1
            tally.last_mistake_at = datetime.now(timezone.utc)

    def _get_mistakes(self, user_id: str) -> dict[str, int]:
        with session_scope(self._session_factory) as session:
            tallies = session.scalars(select(MistakeTally).where(MistakeTally.user_id == user_id))
            return {tally.item_id: tally.count for tally in tallies}

    async def record_mistake(self, user_id: str, item_id: str) -> None:
        try:
            await self._call(self._record_mistake, user_id, item_id)
        except Exception as e:
            raise PersistenceFailed(user_id, item_id, e) from e

    async def get_mistakes(self, user_id: str) -> dict[str, int]:
        return await self._call(self._get_mistakes, user_id)

    # -------------------------------------------------------------------------
    # Learned items
    # -------------------------------------------------------------------------

    def _mark_learned(self, user_id: str, item_id: str) -> None:
        with session_scope(self._session_factory) as session:
            if session.get(LearnedItem, (user_id, item_id)) is None:
                session.add(
                    LearnedItem(user_id=user_id, item_id=item_id, learned_at=datetime.now(timezone.utc))
                )

    def _get_learned(self, user_id: str) -> list[str]:
        with session_scope(self._session_factory) as session:
            return list(
                session.scalars(
                    select(LearnedItem.item_id)
                    .where(LearnedItem.user_id == user_id)
                    .order_by(LearnedItem.learned_at, LearnedItem.item_id)
                )
            )

    async def mark_learned(self, user_id: str, item_id: str) -> None:
        try:
            await self._call(self._mark_learned, user_id, item_id)
        except Exception as e:
            raise PersistenceFailed(user_id, item_id, e) from e

    async def get_learned(self, user_id: str) -> list[str]:
        return await self._call(self._get_learned, user_id)

    def close(self) -> None:
        """Dispose of the engine's connections."""
        self.engine.dispose()


# =============================================================================
# Outbox
# =============================================================================


class OutboxStateStore:
    """
    Bounded retry queue in front of another store.

    A failed put is kept in the outbox (latest state per key) and still
    reported as PersistenceFailed. Every successful put flushes the outbox
    oldest first. Reads see outbox entries over the inner store. When the
    outbox is full the oldest entry is dropped and logged.
    """

    def __init__(self, inner: StateStore, max_size: int):
        if max_size < 1:
            raise ValueError(f"Outbox size must be >= 1, got {max_size}")
        self.inner = inner
        self.max_size = max_size
        self._pending: OrderedDict[StateKey, ReviewState] = OrderedDict()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _enqueue(self, key: StateKey, state: ReviewState) -> None:
        self._pending.pop(key, None)
        self._pending[key] = state
        while len(self._pending) > self.max_size:
            (user_id, item_id), _ = self._pending.popitem(last=False)
            logger.error(f"Outbox full, dropped pending state for {user_id}/{item_id}")

    async def get(self, user_id: str, item_id: str) -> ReviewState | None:
        pending = self._pending.get((user_id, item_id))
        if pending is not None:
            return pending
        return await self.inner.get(user_id, item_id)

    async def get_all(self, user_id: str) -> dict[str, ReviewState]:
        states = await self.inner.get_all(user_id)
        for (user, item), state in self._pending.items():
            if user == user_id:
                states[item] = state
        return states

    async def put(self, user_id: str, item_id: str, state: ReviewState) -> None:
        key = (user_id, item_id)
        try:
            await self.inner.put(user_id, item_id, state)
        except Exception as e:
            self._enqueue(key, state)
            logger.warning(
                f"Write for {user_id}/{item_id} queued in outbox ({self.pending_count} pending)"
            )
            if isinstance(e, PersistenceFailed):
                raise
            raise PersistenceFailed(user_id, item_id, e) from e

        if self._pending.get(key) is not None:
            del self._pending[key]
        if self._pending:
            await self.flush()

    async def flush(self) -> int:
        """
        Retry pending writes oldest first, stopping at the first failure.

        Returns:
            Number of entries written
        """
        flushed = 0
        while self._pending:
            key, state = next(iter(self._pending.items()))
            try:
                await self.inner.put(*key, state)
            except Exception as e:
                logger.warning(f"Outbox flush stopped at {key[0]}/{key[1]}: {e}")
                break
            if self._pending.get(key) is state:
                del self._pending[key]
            flushed += 1

        if flushed:
            logger.info(f"Outbox flushed {flushed} pending writes")
        return flushed

    async def record_mistake(self, user_id: str, item_id: str) -> None:
        await self.inner.record_mistake(user_id, item_id)

    async def get_mistakes(self, user_id: str) -> dict[str, int]:
        return await self.inner.get_mistakes(user_id)

    async def mark_learned(self, user_id: str, item_id: str) -> None:
        await self.inner.mark_learned(user_id, item_id)

    async def get_learned(self, user_id: str) -> list[str]:
        return await self.inner.get_learned(user_id)

    def close(self) -> None:
        if self._pending:
            logger.warning(f"Closing store with {self.pending_count} unwritten outbox entries")
        close = getattr(self.inner, "close", None)
        if close is not None:
            close()
