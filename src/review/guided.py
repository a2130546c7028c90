"""
Guided learning: introduce new words one at a time, then batch them.

Each unlearned catalog item gets a lesson (definition, examples and its
practice exercises). Finishing the lesson records the item as learned.
Whenever the learned count reaches a multiple of the batch size, the last
batch of learned items goes through the mistake-correction loop.

Learned progress lives in the state store, so a course picks up where the
previous run stopped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from .batch import DEFAULT_BATCH_SIZE, BatchMistakeLoop, BatchResult, Learner
from .catalog import Catalog
from .content import ExerciseSource
from .errors import PersistenceFailed
from .exercises import AnswerResult, grade_answer
from .models import ItemContent, LearningItem
from .state_store import StateStore

LESSON_PASS = 0


class LessonLearner(Learner, Protocol):
    """A batch learner that can also sit through lessons."""

    def introduce(self, item: LearningItem, content: ItemContent) -> None:
        """Show the lesson for a new item and block until the learner continues."""
        ...

    def practiced(self, item: LearningItem, result: AnswerResult) -> None:
        """Show feedback for a lesson exercise."""
        ...


@dataclass
class CourseResult:
    """Outcome of one guided learning run."""

    learned: list[str] = field(default_factory=list)
    batches: list[BatchResult] = field(default_factory=list)
    persistence_failures: int = 0
    complete: bool = False  # Every catalog item has been learned


class GuidedCourse:
    """
    Lesson-by-lesson introduction of catalog items with periodic batches.

    Args:
        user_id: Learner the progress belongs to
        catalog: Items in teaching order
        store: Store holding learned items and the mistake tally
        exercises: Content source for lessons and batch quizzes
        learner: Lesson, answer and acknowledgement callbacks
        batch_size: Learned items per mistake-correction batch
        max_passes: Pass limit handed to the batch loop
    """

    def __init__(
        self,
        user_id: str,
        catalog: Catalog,
        store: StateStore,
        exercises: ExerciseSource,
        learner: LessonLearner,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_passes: int | None = None,
    ):
        if batch_size < 1:
            raise ValueError(f"Batch size must be >= 1, got {batch_size}")
        self.user_id = user_id
        self.catalog = catalog
        self.store = store
        self.exercises = exercises
        self.learner = learner
        self.batch_size = batch_size
        self.batch_loop = BatchMistakeLoop(
            exercises, learner, store=store, user_id=user_id, max_passes=max_passes
        )

    async def run(self, limit: int | None = None) -> CourseResult:
        """
        Teach up to ``limit`` new items (all remaining when None).

        A store that cannot report learned progress ends the run before any
        lesson, so nothing is taught twice.
        """
        result = CourseResult()
        try:
            learned = await self.store.get_learned(self.user_id)
        except Exception as e:
            result.persistence_failures += 1
            logger.error(f"Could not load learned items for {self.user_id}: {e}")
            return result

        known = set(learned)
        remaining = [item for item in self.catalog if item.id not in known]
        logger.info(f"Guided course for {self.user_id}: {len(known)} learned, {len(remaining)} to go")

        for item in remaining:
            if limit is not None and len(result.learned) >= limit:
                break

            await self._lesson(item)
            try:
                await self.store.mark_learned(self.user_id, item.id)
            except Exception as e:
                error = e if isinstance(e, PersistenceFailed) else PersistenceFailed(self.user_id, item.id, e)
                result.persistence_failures += 1
                logger.warning(f"{error}; continuing course")

            learned.append(item.id)
            result.learned.append(item.id)
            if len(learned) % self.batch_size == 0:
                batch = self.catalog.get_by_ids(learned[-self.batch_size :])
                logger.info(f"Batch review after {len(learned)} learned items")
                result.batches.append(await self.batch_loop.run_batch(batch))

        result.complete = len(result.learned) == len(remaining)
        await self.batch_loop.drain()
        return result

    async def _lesson(self, item: LearningItem) -> None:
        content = await self.exercises.content_for(item)
        self.learner.introduce(item, content)
        # Lesson answers are practice: wrong ones are neither tallied nor repeated
        for exercise in content.exercises:
            answer = self.learner.answer(item, exercise, LESSON_PASS)
            self.learner.practiced(item, grade_answer(exercise, answer))
