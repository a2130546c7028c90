"""
Batch mistake-correction loop.

Newly introduced items are quizzed in batches. Every wrong answer puts the
item into the pass's mistake set and shows the learner the correct meaning
before moving on. The next pass quizzes only the mistake set, and the batch
is mastered once a pass ends without mistakes.

There is no built-in limit on passes; ``max_passes`` stops early when set.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from .content import ExerciseSource
from .exercises import AnswerResult, Exercise, grade_answer, quiz_exercise
from .models import LearningItem
from .state_store import StateStore

DEFAULT_BATCH_SIZE = 10


class Learner(Protocol):
    """The person answering, as seen by the batch loop."""

    def answer(self, item: LearningItem, exercise: Exercise, pass_number: int) -> int | str:
        """Return an option index (multiple choice) or text (free text)."""
        ...

    def acknowledge(self, item: LearningItem, result: AnswerResult) -> None:
        """Show the correction and block until the learner continues."""
        ...


@dataclass
class BatchResult:
    """Outcome of one batch."""

    mastered_count: int
    attempts_used: int  # Passes run
    answers_total: int = 0
    mistakes_total: int = 0
    mistakes_per_pass: list[list[str]] = field(default_factory=list)
    unmastered: list[str] = field(default_factory=list)

    @property
    def mastered(self) -> bool:
        return not self.unmastered


def chunk_batches(
    items: Sequence[LearningItem], size: int = DEFAULT_BATCH_SIZE
) -> Iterator[list[LearningItem]]:
    """Split items into consecutive batches of at most ``size``."""
    if size < 1:
        raise ValueError(f"Batch size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class BatchMistakeLoop:
    """
    Runs batches until every item is answered correctly in a single pass.

    Args:
        exercises: Content source used to build one quiz per item per pass
        learner: Answer and acknowledgement callbacks
        store: Optional store receiving the per-item mistake tally
        user_id: Learner the tally belongs to (required with a store)
        max_passes: Stop after this many passes (None for no limit)
    """

    def __init__(
        self,
        exercises: ExerciseSource,
        learner: Learner,
        store: StateStore | None = None,
        user_id: str | None = None,
        max_passes: int | None = None,
    ):
        if store is not None and user_id is None:
            raise ValueError("user_id is required when a store is given")
        if max_passes is not None and max_passes < 1:
            raise ValueError(f"max_passes must be >= 1, got {max_passes}")
        self.exercises = exercises
        self.learner = learner
        self.store = store
        self.user_id = user_id
        self.max_passes = max_passes
        self._pending_writes: set[asyncio.Task[None]] = set()

    async def run_batch(self, items: Iterable[LearningItem]) -> BatchResult:
        """
        Quiz a batch until it is mastered.

        Args:
            items: Items of the batch (repeated ids are quizzed once)

        Returns:
            BatchResult with mastered count and passes used
        """
        batch = list({item.id: item for item in items}.values())
        result = BatchResult(mastered_count=0, attempts_used=0)
        pass_items = batch

        while pass_items:
            if self.max_passes is not None and result.attempts_used >= self.max_passes:
                logger.info(
                    f"Batch stopped after {result.attempts_used} passes, "
                    f"{len(pass_items)} items unmastered"
                )
                break

            result.attempts_used += 1
            mistakes = await self._run_pass(pass_items, result.attempts_used, result)
            result.mistakes_per_pass.append([item.id for item in mistakes])
            logger.info(
                f"Batch pass {result.attempts_used}: "
                f"{len(pass_items) - len(mistakes)}/{len(pass_items)} correct"
            )
            pass_items = mistakes

        result.unmastered = [item.id for item in pass_items]
        result.mastered_count = len(batch) - len(result.unmastered)
        await self.drain()
        return result

    async def _run_pass(
        self, items: list[LearningItem], pass_number: int, result: BatchResult
    ) -> list[LearningItem]:
        quizzes = [(item, quiz_exercise(await self.exercises.content_for(item))) for item in items]
        mistakes: dict[str, LearningItem] = {}

        for item, exercise in quizzes:
            answer = self.learner.answer(item, exercise, pass_number)
            graded = grade_answer(exercise, answer)
            result.answers_total += 1
            if graded.correct:
                continue

            result.mistakes_total += 1
            mistakes.setdefault(item.id, item)
            self._record_mistake(item)
            self.learner.acknowledge(item, graded)

        return list(mistakes.values())

    def _record_mistake(self, item: LearningItem) -> None:
        if self.store is None:
            return
        task = asyncio.create_task(self._write_mistake(item))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_mistake(self, item: LearningItem) -> None:
        try:
            await self.store.record_mistake(self.user_id, item.id)
        except Exception as e:
            logger.warning(f"Failed to record mistake for {self.user_id}/{item.id}: {e}")

    async def drain(self) -> None:
        """Wait for outstanding mistake writes."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))
