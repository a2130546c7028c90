"""
Review session state machine.

One ReviewSession drives one learner through one queue:

    AWAITING_QUEUE -> PRESENTING -> ANSWERING -> RATING -> (next item) ...
                                                         -> SESSION_COMPLETE

The presentation layer calls submit_answer() while ANSWERING and
submit_rating() while RATING, and receives SessionEvents through the
on_event callback. Ratings update the in-memory state at once; the store
write runs as a background task and a failed write is reported without
interrupting the session.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from loguru import logger

from .content import ExerciseSource
from .errors import NothingDue, PersistenceFailed, SessionStateError
from .exercises import AnswerResult, Exercise, grade_answer
from .interval import IntervalScheduler
from .models import ItemContent, LearningItem, ReviewState
from .queue_builder import DEFAULT_NEW_ITEM_CAP, build_queue
from .state_store import StateStore

# =============================================================================
# Phases and Events
# =============================================================================


class SessionPhase(str, Enum):
    AWAITING_QUEUE = "awaiting_queue"
    PRESENTING = "presenting"
    ANSWERING = "answering"
    RATING = "rating"
    SESSION_COMPLETE = "session_complete"


class EventTag(str, Enum):
    PRESENTING = "presenting"
    ANSWERING = "answering"
    RATING = "rating"
    SESSION_COMPLETE = "session_complete"
    NOTHING_DUE = "nothing_due"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass
class SessionSummary:
    """Counters for a finished (or running) session."""

    items_total: int = 0
    items_due: int = 0
    items_new: int = 0
    items_rated: int = 0
    exercises_answered: int = 0
    exercises_correct: int = 0
    persistence_failures: int = 0
    empty: bool = False
    abandoned: bool = False

    @property
    def accuracy(self) -> float:
        """Share of answered exercises that were correct (0.0-1.0)."""
        if self.exercises_answered == 0:
            return 0.0
        return self.exercises_correct / self.exercises_answered


@dataclass(frozen=True)
class SessionEvent:
    """Notification sent to the presentation layer."""

    tag: EventTag
    item: LearningItem | None = None
    content: ItemContent | None = None
    exercise: Exercise | None = None
    exercise_index: int | None = None
    summary: SessionSummary | None = None
    error: Exception | None = None


EventListener = Callable[[SessionEvent], None]


# =============================================================================
# Session
# =============================================================================


@dataclass
class _Cursor:
    position: int = -1
    content: ItemContent | None = None
    exercise_index: int = 0
    results: list[AnswerResult] = field(default_factory=list)


class ReviewSession:
    """
    A single spaced-review session for one learner.

    Args:
        user_id: Learner the states belong to
        catalog: Learning items in catalog order
        store: Persistent state store
        exercises: Content source (provider with local fallback)
        scheduler: Interval algorithm (default SM-2 configuration)
        new_item_cap: Maximum unseen items introduced this session
        clock: Returns the current time; defaults to UTC now
        on_event: Callback receiving SessionEvents
    """

    def __init__(
        self,
        user_id: str,
        catalog: Iterable[LearningItem],
        store: StateStore,
        exercises: ExerciseSource,
        scheduler: IntervalScheduler | None = None,
        new_item_cap: int = DEFAULT_NEW_ITEM_CAP,
        clock: Callable[[], datetime] | None = None,
        on_event: EventListener | None = None,
    ):
        self.user_id = user_id
        self.catalog = list(catalog)
        self.store = store
        self.exercises = exercises
        self.scheduler = scheduler or IntervalScheduler()
        self.new_item_cap = new_item_cap
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.on_event = on_event

        self.phase = SessionPhase.AWAITING_QUEUE
        self.queue: tuple[LearningItem, ...] = ()
        self.summary = SessionSummary()
        self._states: dict[str, ReviewState] = {}
        self._cursor = _Cursor()
        self._pending_writes: set[asyncio.Task[None]] = set()

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def current_item(self) -> LearningItem | None:
        if 0 <= self._cursor.position < len(self.queue):
            return self.queue[self._cursor.position]
        return None

    @property
    def current_content(self) -> ItemContent | None:
        return self._cursor.content

    @property
    def current_exercise(self) -> Exercise | None:
        content = self._cursor.content
        if self.phase is not SessionPhase.ANSWERING or content is None:
            return None
        return content.exercises[self._cursor.exercise_index]

    @property
    def current_results(self) -> list[AnswerResult]:
        return list(self._cursor.results)

    @property
    def is_complete(self) -> bool:
        return self.phase is SessionPhase.SESSION_COMPLETE

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    def state_for(self, item_id: str) -> ReviewState | None:
        """Latest known state of an item, including unwritten ratings."""
        return self._states.get(item_id)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """
        Load states, build the queue and present the first item.

        If the states cannot be loaded the session completes at once with a
        PERSISTENCE_FAILED event; rating from an empty map would overwrite
        stored progress.
        """
        self._require(SessionPhase.AWAITING_QUEUE, "start")
        try:
            self._states = await self.store.get_all(self.user_id)
        except Exception as e:
            error = e if isinstance(e, PersistenceFailed) else PersistenceFailed(self.user_id, cause=e)
            self.summary.persistence_failures += 1
            self.summary.empty = True
            logger.error(f"Could not load review states: {error}")
            self._emit(SessionEvent(EventTag.PERSISTENCE_FAILED, error=error))
            self._complete()
            return
        now = self.clock()

        try:
            queue = build_queue(self.catalog, self._states, now, self.new_item_cap)
        except NothingDue:
            logger.info(f"Nothing due for {self.user_id}")
            self.summary.empty = True
            self._emit(SessionEvent(EventTag.NOTHING_DUE))
            self._complete()
            return

        self.queue = tuple(queue)
        self.summary.items_total = len(self.queue)
        self.summary.items_new = sum(1 for item in self.queue if item.id not in self._states)
        self.summary.items_due = self.summary.items_total - self.summary.items_new
        logger.info(
            f"Session built for {self.user_id}: "
            f"{self.summary.items_due} due + {self.summary.items_new} new"
        )
        await self._present_next()

    def submit_answer(self, answer: int | str) -> AnswerResult:
        """
        Grade an answer to the current exercise.

        Raises:
            SessionStateError: If the session is not ANSWERING
            InvalidAnswer: If the answer does not fit the exercise
        """
        self._require(SessionPhase.ANSWERING, "submit_answer")
        exercise = self.current_exercise
        result = grade_answer(exercise, answer)

        self._cursor.results.append(result)
        self.summary.exercises_answered += 1
        if result.correct:
            self.summary.exercises_correct += 1

        content = self._cursor.content
        if self._cursor.exercise_index + 1 < len(content.exercises):
            self._cursor.exercise_index += 1
            self._enter_answering()
        else:
            self._enter_rating()
        return result

    async def submit_rating(self, rating: int) -> ReviewState:
        """
        Rate the current item and move on.

        Returns:
            The item's new ReviewState

        Raises:
            SessionStateError: If the session is not RATING
            InvalidRating: If rating is not 1..5 (session stays in RATING)
        """
        self._require(SessionPhase.RATING, "submit_rating")
        item = self.current_item
        new_state = self.scheduler.apply(self._states.get(item.id), rating, self.clock())

        self._states[item.id] = new_state
        self.summary.items_rated += 1
        self._schedule_write(item.id, new_state)
        logger.debug(
            f"Rated {item.id}={int(rating)}: interval={new_state.interval} "
            f"ease={new_state.ease_factor:.2f} streak={new_state.streak}"
        )

        await self._present_next()
        return new_state

    def abandon(self) -> None:
        """End the session now. A rating not yet submitted is discarded."""
        if self.is_complete:
            return
        logger.info(
            f"Session abandoned by {self.user_id} after "
            f"{self.summary.items_rated}/{self.summary.items_total} items"
        )
        self.summary.abandoned = True
        self._complete()

    async def drain(self) -> None:
        """Wait until every scheduled store write has finished."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require(self, phase: SessionPhase, operation: str) -> None:
        if self.phase is not phase:
            raise SessionStateError(
                f"{operation}() needs phase {phase.value}, session is {self.phase.value}"
            )

    def _emit(self, event: SessionEvent) -> None:
        if self.on_event is not None:
            self.on_event(event)

    async def _present_next(self) -> None:
        next_position = self._cursor.position + 1
        if next_position >= len(self.queue):
            self._complete()
            return

        self._cursor = _Cursor(position=next_position)
        self.phase = SessionPhase.PRESENTING
        item = self.queue[next_position]
        content = await self.exercises.content_for(item)

        # Abandoned while the content was loading
        if self.is_complete:
            return

        self._cursor.content = content
        self._emit(SessionEvent(EventTag.PRESENTING, item=item, content=content))
        if content.exercises:
            self._enter_answering()
        else:
            self._enter_rating()

    def _enter_answering(self) -> None:
        self.phase = SessionPhase.ANSWERING
        self._emit(
            SessionEvent(
                EventTag.ANSWERING,
                item=self.current_item,
                content=self._cursor.content,
                exercise=self.current_exercise,
                exercise_index=self._cursor.exercise_index,
            )
        )

    def _enter_rating(self) -> None:
        self.phase = SessionPhase.RATING
        self._emit(SessionEvent(EventTag.RATING, item=self.current_item, content=self._cursor.content))

    def _complete(self) -> None:
        self.phase = SessionPhase.SESSION_COMPLETE
        self._emit(SessionEvent(EventTag.SESSION_COMPLETE, summary=self.summary))

    def _schedule_write(self, item_id: str, state: ReviewState) -> None:
        task = asyncio.create_task(self._write(item_id, state))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write(self, item_id: str, state: ReviewState) -> None:
        try:
            await self.store.put(self.user_id, item_id, state)
        except Exception as e:
            error = e if isinstance(e, PersistenceFailed) else PersistenceFailed(self.user_id, item_id, e)
            self.summary.persistence_failures += 1
            logger.warning(f"{error}; continuing session")
            self._emit(
                SessionEvent(EventTag.PERSISTENCE_FAILED, item=self._queued_item(item_id), error=error)
            )

    def _queued_item(self, item_id: str) -> LearningItem | None:
        return next((item for item in self.queue if item.id == item_id), None)
