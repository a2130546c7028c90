"""
Tests for exercise grading and the local exercise factory.
"""

import random

import pytest

from src.review.errors import InvalidAnswer
from src.review.exercises import (
    DISTRACTOR_PLACEHOLDER,
    ExerciseOption,
    FreeText,
    FreeTextMode,
    LocalExerciseFactory,
    MultipleChoice,
    grade_answer,
    quiz_exercise,
)
from src.review.models import ItemContent, LearningItem


@pytest.fixture
def mcq():
    return MultipleChoice(
        prompt="What is the definition of abate?",
        options=(
            ExerciseOption("to grow"),
            ExerciseOption("to lessen", correct=True),
            ExerciseOption("to hide"),
            ExerciseOption("to argue"),
        ),
    )


class TestMultipleChoice:
    def test_requires_exactly_one_correct_option(self):
        with pytest.raises(ValueError):
            MultipleChoice(prompt="?", options=(ExerciseOption("a"), ExerciseOption("b")))
        with pytest.raises(ValueError):
            MultipleChoice(
                prompt="?",
                options=(ExerciseOption("a", True), ExerciseOption("b", True)),
            )

    def test_correct_answer(self, mcq):
        result = grade_answer(mcq, 1)

        assert result.correct is True
        assert result.user_answer == "to lessen"

    def test_wrong_answer_reports_correct_option(self, mcq):
        result = grade_answer(mcq, 0)

        assert result.correct is False
        assert result.correct_answer == "to lessen"
        assert "to lessen" in result.feedback

    @pytest.mark.parametrize("answer", [4, -1, "1", True])
    def test_invalid_answers(self, mcq, answer):
        with pytest.raises(InvalidAnswer):
            grade_answer(mcq, answer)


class TestFreeText:
    def test_recall_term_ignores_case_and_whitespace(self):
        exercise = FreeText(prompt="Which word means 'to lessen'?", term="Abate")

        assert grade_answer(exercise, "  abate ").correct is True
        assert grade_answer(exercise, "abated").correct is False

    def test_sentence_must_contain_term(self):
        exercise = FreeText(prompt="Use it", term="abate", mode=FreeTextMode.USE_IN_SENTENCE)

        assert grade_answer(exercise, "The storm began to Abate.").correct is True
        assert grade_answer(exercise, "The storm stopped.").correct is False

    def test_sentence_must_be_longer_than_five_characters(self):
        exercise = FreeText(prompt="Use it", term="abate", mode=FreeTextMode.USE_IN_SENTENCE)

        assert grade_answer(exercise, "abate").correct is False

    def test_non_string_answer_rejected(self):
        with pytest.raises(InvalidAnswer):
            grade_answer(FreeText(prompt="?", term="abate"), 2)


def test_unknown_exercise_type_rejected():
    with pytest.raises(TypeError):
        grade_answer(object(), 0)


class TestLocalExerciseFactory:
    def test_four_options_with_one_correct(self, catalog):
        factory = LocalExerciseFactory(catalog, rng=random.Random(1))

        for item in catalog:
            exercise = factory.multiple_choice(item)
            texts = [o.text for o in exercise.options]

            assert len(exercise.options) == 4
            assert sum(o.correct for o in exercise.options) == 1
            assert texts.count(item.meaning) == 1
            assert exercise.correct_option.text == item.meaning

    def test_prompt_names_the_term(self, catalog):
        exercise = LocalExerciseFactory(catalog).multiple_choice(catalog[0])

        assert exercise.prompt == f"What is the definition of {catalog[0].term}?"

    def test_same_seed_same_exercise(self, catalog):
        first = LocalExerciseFactory(catalog, rng=random.Random(42)).multiple_choice(catalog[3])
        second = LocalExerciseFactory(catalog, rng=random.Random(42)).multiple_choice(catalog[3])

        assert first == second

    def test_distractors_skip_identical_meanings(self):
        items = [
            LearningItem(id="a", term="big", meaning="large"),
            LearningItem(id="b", term="huge", meaning="large"),
            LearningItem(id="c", term="tiny", meaning="small"),
        ]

        exercise = LocalExerciseFactory(items, rng=random.Random(0)).multiple_choice(items[0])
        texts = [o.text for o in exercise.options]

        assert texts.count("large") == 1
        assert "small" in texts

    def test_small_catalog_padded_with_placeholder(self):
        items = [
            LearningItem(id="a", term="big", meaning="large"),
            LearningItem(id="b", term="tiny", meaning="small"),
        ]

        exercise = LocalExerciseFactory(items, rng=random.Random(0)).multiple_choice(items[0])
        texts = [o.text for o in exercise.options]

        assert len(texts) == 4
        assert texts.count(DISTRACTOR_PLACEHOLDER) == 2
        assert sum(o.correct for o in exercise.options) == 1

    def test_fallback_content(self, catalog):
        content = LocalExerciseFactory(catalog).content_for(catalog[0])

        assert content.is_fallback
        assert content.definition == catalog[0].meaning
        assert content.examples == (catalog[0].example_sentence,)
        assert len(content.exercises) == 1


class TestQuizExercise:
    def test_prefers_multiple_choice(self, catalog, mcq):
        recall = FreeText(prompt="?", term=catalog[0].term)
        content = ItemContent(item=catalog[0], definition="d", exercises=(recall, mcq))

        assert quiz_exercise(content) is mcq

    def test_falls_back_to_first_exercise(self, catalog):
        recall = FreeText(prompt="?", term=catalog[0].term)
        content = ItemContent(item=catalog[0], definition="d", exercises=(recall,))

        assert quiz_exercise(content) is recall

    def test_no_exercises(self, catalog):
        with pytest.raises(ValueError):
            quiz_exercise(ItemContent(item=catalog[0], definition="d"))
