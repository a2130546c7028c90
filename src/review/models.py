"""
Core data model for the review engine.

LearningItem comes from the catalog and never changes. ReviewState is the
per-(user, item) scheduling record; it is frozen and replaced on every
rating rather than mutated.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .exercises import Exercise

DEFAULT_EASE_FACTOR = 2.5


class ConfidenceRating(IntEnum):
    """Self-reported confidence after reviewing an item."""

    UNFAMILIAR = 1
    WEAK = 2
    MODERATE = 3
    CONFIDENT = 4
    MASTERY = 5

    @property
    def label(self) -> str:
        return self.name.title()


@dataclass(frozen=True)
class LearningItem:
    """A vocabulary entry from the catalog."""

    id: str
    term: str
    meaning: str
    example_sentence: str | None = None
    category: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearningItem:
        """Create from a catalog record (accepts the legacy ``sentence`` key)."""
        return cls(
            id=str(data["id"]),
            term=data["term"],
            meaning=data["meaning"],
            example_sentence=data.get("example_sentence") or data.get("sentence"),
            category=data.get("category"),
        )


@dataclass(frozen=True)
class ReviewState:
    """Scheduling state for one item of one learner."""

    interval: int = 0
    next_review_at: datetime | None = None
    ease_factor: float = DEFAULT_EASE_FACTOR
    streak: int = 0

    @property
    def reviewed(self) -> bool:
        return self.interval >= 1

    def is_due(self, now: datetime) -> bool:
        """Check if the item should be reviewed at ``now``."""
        if self.next_review_at is None:
            return True
        return self.next_review_at <= now

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.next_review_at is not None:
            data["next_review_at"] = self.next_review_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewState:
        next_review_at = data.get("next_review_at")
        if isinstance(next_review_at, str):
            next_review_at = datetime.fromisoformat(next_review_at)
        if next_review_at is not None and next_review_at.tzinfo is None:
            next_review_at = next_review_at.replace(tzinfo=timezone.utc)
        return cls(
            interval=int(data.get("interval", 0)),
            next_review_at=next_review_at,
            ease_factor=float(data.get("ease_factor", DEFAULT_EASE_FACTOR)),
            streak=int(data.get("streak", 0)),
        )


@dataclass(frozen=True)
class ItemContent:
    """Definition, examples and exercises prepared for one item."""

    item: LearningItem
    definition: str
    examples: tuple[str, ...] = ()
    exercises: tuple[Exercise, ...] = ()
    source: str = "provider"  # "provider" or "fallback"

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"
