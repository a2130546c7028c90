"""
Session queue construction.

A queue is every due item, most fragile first, followed by a capped number
of never-seen items in catalog order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from .errors import NothingDue
from .models import LearningItem, ReviewState

DEFAULT_NEW_ITEM_CAP = 5


@dataclass(frozen=True)
class QueuePartition:
    """Catalog split by scheduling status at a point in time."""

    due: list[LearningItem]
    unseen: list[LearningItem]
    scheduled: list[LearningItem]  # Reviewed but not yet due


def partition_catalog(
    catalog: Iterable[LearningItem],
    states: Mapping[str, ReviewState],
    now: datetime,
) -> QueuePartition:
    """
    Split the catalog into due, unseen and scheduled items.

    Entries repeating an id already seen are ignored. Due items are sorted
    by ascending interval; the sort is stable so ties keep catalog order.
    """
    due: list[LearningItem] = []
    unseen: list[LearningItem] = []
    scheduled: list[LearningItem] = []
    seen_ids: set[str] = set()

    for item in catalog:
        if item.id in seen_ids:
            continue
        seen_ids.add(item.id)

        state = states.get(item.id)
        if state is None:
            unseen.append(item)
        elif state.is_due(now):
            due.append(item)
        else:
            scheduled.append(item)

    due.sort(key=lambda item: states[item.id].interval)
    return QueuePartition(due=due, unseen=unseen, scheduled=scheduled)


def build_queue(
    catalog: Iterable[LearningItem],
    states: Mapping[str, ReviewState],
    now: datetime,
    new_item_cap: int = DEFAULT_NEW_ITEM_CAP,
) -> list[LearningItem]:
    """
    Build the ordered review queue for a session.

    Args:
        catalog: Learning items in catalog order
        states: ReviewState per item id for the learner
        now: Reference time for due checks
        new_item_cap: Maximum number of unseen items to introduce

    Returns:
        Due items sorted by interval, then up to ``new_item_cap`` unseen items

    Raises:
        NothingDue: If there is nothing due and no unseen item to introduce
        ValueError: If new_item_cap is negative
    """
    if new_item_cap < 0:
        raise ValueError(f"new_item_cap must be >= 0, got {new_item_cap}")

    partition = partition_catalog(catalog, states, now)
    queue = partition.due + partition.unseen[:new_item_cap]
    if not queue:
        raise NothingDue("No items due and no new items to introduce")
    return queue
