"""
Review scheduling tables.

- ReviewStateRecord: SM-2 state per (user, item)
- MistakeTally: running count of wrong answers per (user, item)
- LearnedItem: items introduced through guided lessons, in learning order

Datetimes are stored in UTC.
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewStateRecord(Base):
    """Scheduling state for one item of one learner."""

    __tablename__ = "review_state"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_review_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<ReviewStateRecord {self.user_id}/{self.item_id} "
            f"interval={self.interval_days} streak={self.streak}>"
        )


class MistakeTally(Base):
    """How often a learner answered an item wrong."""

    __tablename__ = "mistake_tally"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_mistake_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class LearnedItem(Base):
    """An item introduced to a learner through a guided lesson."""

    __tablename__ = "learned_item"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    learned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
