"""
Tests for guided learning (lessons followed by batch reviews).
"""

import pytest

from src.review.catalog import Catalog
from src.review.guided import LESSON_PASS, GuidedCourse
from src.review.state_store import InMemoryStateStore


class LessonLog:
    """Learner that answers every exercise and logs each callback in order."""

    def __init__(self, lesson_misses=()):
        self.lesson_misses = set(lesson_misses)
        self.log = []

    def introduce(self, item, content):
        self.log.append(("introduce", item.id))

    def practiced(self, item, result):
        self.log.append(("practiced", item.id, result.correct))

    def answer(self, item, exercise, pass_number):
        self.log.append(("answer", pass_number, item.id))
        if pass_number == LESSON_PASS and item.id in self.lesson_misses:
            return (exercise.correct_index + 1) % len(exercise.options)
        return exercise.correct_index

    def acknowledge(self, item, result):
        self.log.append(("acknowledge", item.id))

    def introduced(self):
        return [entry[1] for entry in self.log if entry[0] == "introduce"]

    def quizzed_on(self, pass_number):
        return [entry[2] for entry in self.log if entry[0] == "answer" and entry[1] == pass_number]


@pytest.fixture
def course_catalog(catalog):
    return Catalog(catalog)


def make_course(catalog, store, source, learner, **kwargs):
    return GuidedCourse("u1", catalog, store, source, learner, **kwargs)


class TestLessons:
    @pytest.mark.asyncio
    async def test_batch_review_after_every_ten_words(self, course_catalog, store, offline_source):
        learner = LessonLog()

        result = await make_course(course_catalog, store, offline_source, learner).run()

        ids = [item.id for item in course_catalog]
        assert result.learned == ids
        assert result.complete
        assert len(result.batches) == 1
        assert learner.quizzed_on(1) == ids[:10]

        first_batch_answer = learner.log.index(("answer", 1, "item-01"))
        assert learner.log[first_batch_answer - 1] == ("practiced", "item-10", True)
        assert learner.introduced()[-2:] == ["item-11", "item-12"]
        assert learner.log.index(("introduce", "item-11")) > first_batch_answer

    @pytest.mark.asyncio
    async def test_lesson_shows_item_then_exercise(self, course_catalog, store, offline_source):
        learner = LessonLog()

        await make_course(course_catalog, store, offline_source, learner).run(limit=1)

        assert learner.log == [
            ("introduce", "item-01"),
            ("answer", LESSON_PASS, "item-01"),
            ("practiced", "item-01", True),
        ]

    @pytest.mark.asyncio
    async def test_learned_words_are_saved_in_order(self, course_catalog, store, offline_source):
        await make_course(course_catalog, store, offline_source, LessonLog()).run(limit=3)

        assert await store.get_learned("u1") == ["item-01", "item-02", "item-03"]

    @pytest.mark.asyncio
    async def test_lesson_mistakes_are_not_tallied(self, course_catalog, store, offline_source):
        learner = LessonLog(lesson_misses={"item-02"})

        await make_course(course_catalog, store, offline_source, learner).run(limit=3)

        assert ("practiced", "item-02", False) in learner.log
        assert await store.get_mistakes("u1") == {}
        assert "acknowledge" not in [entry[0] for entry in learner.log]

    def test_invalid_batch_size(self, course_catalog, store, offline_source):
        with pytest.raises(ValueError):
            make_course(course_catalog, store, offline_source, LessonLog(), batch_size=0)


class TestResume:
    @pytest.mark.asyncio
    async def test_next_run_continues_after_learned_words(self, course_catalog, store, offline_source):
        await make_course(course_catalog, store, offline_source, LessonLog()).run(limit=4)
        learner = LessonLog()

        result = await make_course(course_catalog, store, offline_source, learner).run(limit=2)

        assert learner.introduced() == ["item-05", "item-06"]
        assert result.learned == ["item-05", "item-06"]
        assert not result.complete

    @pytest.mark.asyncio
    async def test_batch_spans_runs(self, course_catalog, store, offline_source):
        await make_course(course_catalog, store, offline_source, LessonLog(), batch_size=5).run(limit=4)
        learner = LessonLog()

        result = await make_course(course_catalog, store, offline_source, learner, batch_size=5).run(limit=1)

        assert len(result.batches) == 1
        assert learner.quizzed_on(1) == ["item-01", "item-02", "item-03", "item-04", "item-05"]

    @pytest.mark.asyncio
    async def test_finished_course_teaches_nothing(self, course_catalog, store, offline_source):
        for item in course_catalog:
            await store.mark_learned("u1", item.id)
        learner = LessonLog()

        result = await make_course(course_catalog, store, offline_source, learner).run()

        assert result.learned == []
        assert result.complete
        assert learner.log == []


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_unreadable_progress_stops_before_lessons(self, course_catalog, offline_source):
        class BrokenLearned(InMemoryStateStore):
            async def get_learned(self, user_id):
                raise ConnectionError("store offline")

        learner = LessonLog()

        result = await make_course(course_catalog, BrokenLearned(), offline_source, learner).run()

        assert result.persistence_failures == 1
        assert result.learned == []
        assert learner.log == []

    @pytest.mark.asyncio
    async def test_failed_save_does_not_stop_course(self, course_catalog, offline_source):
        class UnsavedLessons(InMemoryStateStore):
            async def mark_learned(self, user_id, item_id):
                raise ConnectionError("disk full")

        result = await make_course(
            course_catalog, UnsavedLessons(), offline_source, LessonLog()
        ).run(limit=2)

        assert result.learned == ["item-01", "item-02"]
        assert result.persistence_failures == 2
