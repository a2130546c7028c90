"""
Exercise types, answer grading and the local exercise factory.

Exercises are a closed union of MultipleChoice and FreeText. Grading
dispatches on the concrete type; anything else is a programming error.

The local factory builds multiple-choice exercises from the catalog alone
(one correct meaning plus three meanings of other items) and is what the
engine falls back to whenever the content provider cannot deliver.
"""

from __future__ import annotations

import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Union

from .errors import InvalidAnswer
from .models import ItemContent, LearningItem

OPTION_COUNT = 4
DISTRACTOR_PLACEHOLDER = "Another meaning"
MIN_SENTENCE_LENGTH = 5

# =============================================================================
# Exercise Types
# =============================================================================


@dataclass(frozen=True)
class ExerciseOption:
    """One selectable answer of a multiple-choice exercise."""

    text: str
    correct: bool = False


@dataclass(frozen=True)
class MultipleChoice:
    """Pick the correct option. Exactly one option is correct."""

    prompt: str
    options: tuple[ExerciseOption, ...]
    context: str | None = None  # Sentence shown above the prompt

    def __post_init__(self) -> None:
        correct = sum(1 for option in self.options if option.correct)
        if correct != 1:
            raise ValueError(f"Multiple choice needs exactly one correct option, got {correct}")

    @property
    def correct_index(self) -> int:
        return next(i for i, option in enumerate(self.options) if option.correct)

    @property
    def correct_option(self) -> ExerciseOption:
        return self.options[self.correct_index]


class FreeTextMode(str, Enum):
    RECALL_TERM = "reverse_definition"  # Type the term for a given definition
    USE_IN_SENTENCE = "sentence_creation"  # Write a sentence using the term


@dataclass(frozen=True)
class FreeText:
    """Type an answer that is checked against the item's term."""

    prompt: str
    term: str
    mode: FreeTextMode = FreeTextMode.RECALL_TERM


Exercise = Union[MultipleChoice, FreeText]


@dataclass
class AnswerResult:
    """Result of checking an answer."""

    correct: bool
    feedback: str
    user_answer: str
    correct_answer: str


# =============================================================================
# Grading
# =============================================================================


def grade_answer(exercise: Exercise, answer: int | str) -> AnswerResult:
    """
    Check an answer against an exercise.

    Args:
        exercise: The exercise being answered
        answer: Option index for MultipleChoice, text for FreeText

    Returns:
        AnswerResult with correctness and feedback

    Raises:
        InvalidAnswer: If the answer does not fit the exercise type
    """
    if isinstance(exercise, MultipleChoice):
        return _grade_multiple_choice(exercise, answer)
    if isinstance(exercise, FreeText):
        return _grade_free_text(exercise, answer)
    raise TypeError(f"Unsupported exercise type: {type(exercise).__name__}")


def _grade_multiple_choice(exercise: MultipleChoice, answer: int | str) -> AnswerResult:
    if isinstance(answer, bool) or not isinstance(answer, int):
        raise InvalidAnswer(f"Multiple choice answer must be an option index, got {answer!r}")
    if not 0 <= answer < len(exercise.options):
        raise InvalidAnswer(
            f"Option index {answer} out of range for {len(exercise.options)} options"
        )

    chosen = exercise.options[answer]
    expected = exercise.correct_option.text
    if chosen.correct:
        feedback = "Correct!"
    else:
        feedback = f"Incorrect. The answer is: {expected}"
    return AnswerResult(
        correct=chosen.correct,
        feedback=feedback,
        user_answer=chosen.text,
        correct_answer=expected,
    )


def _grade_free_text(exercise: FreeText, answer: int | str) -> AnswerResult:
    if not isinstance(answer, str):
        raise InvalidAnswer(f"Free text answer must be a string, got {answer!r}")

    text = answer.strip()
    term = exercise.term.strip().lower()

    if exercise.mode is FreeTextMode.RECALL_TERM:
        correct = text.lower() == term
        feedback = "Correct!" if correct else f"Incorrect. The word is: {exercise.term}"
    else:
        correct = len(text) > MIN_SENTENCE_LENGTH and term in text.lower()
        feedback = (
            "Good sentence!" if correct else f"Use the word '{exercise.term}' in a full sentence."
        )
    return AnswerResult(
        correct=correct,
        feedback=feedback,
        user_answer=text,
        correct_answer=exercise.term,
    )


# =============================================================================
# Local Fallback
# =============================================================================


class LocalExerciseFactory:
    """
    Builds exercises from catalog data only.

    Distractors are meanings of other catalog items, never the item's own
    meaning. With fewer than three usable meanings the remaining slots are
    filled with a placeholder. Option order comes from ``rng`` so a seeded
    Random gives reproducible exercises.
    """

    def __init__(self, items: Iterable[LearningItem], rng: random.Random | None = None):
        self.items: Sequence[LearningItem] = list(items)
        self.rng = rng or random.Random()

    def distractors_for(self, item: LearningItem, count: int = OPTION_COUNT - 1) -> list[str]:
        """Pick ``count`` distinct meanings from other catalog items."""
        pool: list[str] = []
        for other in self.items:
            if other.id == item.id or other.meaning == item.meaning:
                continue
            if other.meaning not in pool:
                pool.append(other.meaning)

        picked = self.rng.sample(pool, min(count, len(pool)))
        while len(picked) < count:
            picked.append(DISTRACTOR_PLACEHOLDER)
        return picked

    def multiple_choice(self, item: LearningItem) -> MultipleChoice:
        options = [ExerciseOption(item.meaning, correct=True)]
        options.extend(ExerciseOption(text) for text in self.distractors_for(item))
        self.rng.shuffle(options)
        return MultipleChoice(
            prompt=f"What is the definition of {item.term}?",
            options=tuple(options),
            context=item.example_sentence,
        )

    def content_for(self, item: LearningItem) -> ItemContent:
        """Build fallback content for an item."""
        examples = (item.example_sentence,) if item.example_sentence else ()
        return ItemContent(
            item=item,
            definition=item.meaning,
            examples=examples,
            exercises=(self.multiple_choice(item),),
            source="fallback",
        )


def quiz_exercise(content: ItemContent) -> Exercise:
    """First multiple-choice exercise of the content, else its first exercise."""
    for exercise in content.exercises:
        if isinstance(exercise, MultipleChoice):
            return exercise
    if not content.exercises:
        raise ValueError(f"No exercises for item {content.item.id}")
    return content.exercises[0]
