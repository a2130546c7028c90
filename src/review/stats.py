"""Progress dashboard numbers for a learner."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from .models import LearningItem, ReviewState

MASTERY_INTERVAL_DAYS = 21


@dataclass(frozen=True)
class ProgressStats:
    total_items: int
    studied: int
    mastered: int  # Interval beyond three weeks
    due: int
    to_learn: int  # Never rated

    @property
    def mastery_rate(self) -> float:
        return self.mastered / self.total_items if self.total_items else 0.0


def summarize_progress(
    catalog: Iterable[LearningItem],
    states: Mapping[str, ReviewState],
    now: datetime,
) -> ProgressStats:
    """Count studied, mastered, due and unseen catalog items."""
    ids = list(dict.fromkeys(item.id for item in catalog))
    studied = [states[i] for i in ids if i in states]
    return ProgressStats(
        total_items=len(ids),
        studied=len(studied),
        mastered=sum(1 for s in studied if s.interval > MASTERY_INTERVAL_DAYS),
        due=sum(1 for s in studied if s.is_due(now)),
        to_learn=len(ids) - len(studied),
    )
