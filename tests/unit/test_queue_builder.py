"""
Tests for session queue construction.
"""

import itertools
from datetime import timedelta

import pytest

from src.review.errors import NothingDue
from src.review.models import LearningItem, ReviewState
from src.review.queue_builder import build_queue, partition_catalog


def _due(now, interval, days_ago=1):
    return ReviewState(interval=interval, next_review_at=now - timedelta(days=days_ago), streak=1)


def _later(now, interval):
    return ReviewState(interval=interval, next_review_at=now + timedelta(days=interval), streak=1)


class TestOrdering:
    def test_due_sorted_by_interval_then_unseen(self, make_items, now):
        items = make_items(5)
        states = {
            "item-01": _due(now, 15),
            "item-02": _due(now, 1),
            "item-03": _due(now, 6),
        }

        queue = build_queue(items, states, now, new_item_cap=5)

        assert [i.id for i in queue] == ["item-02", "item-03", "item-01", "item-04", "item-05"]

    def test_equal_intervals_keep_catalog_order(self, make_items, now):
        items = make_items(4)
        states = {item.id: _due(now, 3) for item in items}

        queue = build_queue(items, states, now, new_item_cap=0)

        assert [i.id for i in queue] == ["item-01", "item-02", "item-03", "item-04"]

    def test_due_exactly_now_is_included(self, make_items, now):
        items = make_items(1)
        states = {"item-01": ReviewState(interval=3, next_review_at=now, streak=1)}

        assert build_queue(items, states, now, new_item_cap=0) == items

    def test_not_yet_due_items_are_skipped(self, make_items, now):
        items = make_items(3)
        states = {"item-01": _later(now, 3), "item-02": _due(now, 1)}

        queue = build_queue(items, states, now, new_item_cap=5)

        assert [i.id for i in queue] == ["item-02", "item-03"]


class TestNewItemCap:
    def test_cap_limits_unseen_items_in_catalog_order(self, make_items, now):
        queue = build_queue(make_items(8), {}, now, new_item_cap=3)

        assert [i.id for i in queue] == ["item-01", "item-02", "item-03"]

    def test_cap_does_not_limit_due_items(self, make_items, now):
        items = make_items(7)
        states = {item.id: _due(now, 1) for item in items[:6]}

        queue = build_queue(items, states, now, new_item_cap=1)

        assert len(queue) == 7

    def test_negative_cap_rejected(self, make_items, now):
        with pytest.raises(ValueError):
            build_queue(make_items(2), {}, now, new_item_cap=-1)


class TestNothingDue:
    def test_empty_catalog(self, now):
        with pytest.raises(NothingDue):
            build_queue([], {}, now, new_item_cap=5)

    def test_everything_scheduled_later(self, make_items, now):
        items = make_items(3)
        states = {item.id: _later(now, 5) for item in items}

        with pytest.raises(NothingDue):
            build_queue(items, states, now, new_item_cap=5)

    def test_unseen_items_but_zero_cap(self, make_items, now):
        with pytest.raises(NothingDue):
            build_queue(make_items(3), {}, now, new_item_cap=0)

    def test_nothing_due_is_not_an_engine_error(self):
        from src.review.errors import ReviewEngineError

        assert not issubclass(NothingDue, ReviewEngineError)


class TestDuplicates:
    def test_repeated_catalog_ids_appear_once(self, now):
        a = LearningItem(id="a", term="a", meaning="first")
        a_again = LearningItem(id="a", term="a2", meaning="second")
        b = LearningItem(id="b", term="b", meaning="bee")

        queue = build_queue([a, b, a_again], {}, now, new_item_cap=5)

        assert [i.id for i in queue] == ["a", "b"]
        assert queue[0].meaning == "first"

    def test_no_duplicates_across_state_combinations(self, now):
        items = [LearningItem(id=str(n % 4), term=f"t{n}", meaning=f"m{n}") for n in range(8)]
        options = [None, _due(now, 2), _later(now, 2)]

        for combo in itertools.product(options, repeat=4):
            states = {str(i): s for i, s in enumerate(combo) if s is not None}
            try:
                queue = build_queue(items, states, now, new_item_cap=2)
            except NothingDue:
                partition = partition_catalog(items, states, now)
                assert not partition.due and not partition.unseen
                continue
            ids = [i.id for i in queue]
            assert len(ids) == len(set(ids))


class TestPartition:
    def test_partition_counts(self, make_items, now):
        items = make_items(5)
        states = {"item-01": _due(now, 1), "item-02": _later(now, 4)}

        partition = partition_catalog(items, states, now)

        assert [i.id for i in partition.due] == ["item-01"]
        assert [i.id for i in partition.scheduled] == ["item-02"]
        assert [i.id for i in partition.unseen] == ["item-03", "item-04", "item-05"]
