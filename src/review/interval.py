"""
SM-2 interval algorithm.

Turns a prior ReviewState and a confidence rating into the next
ReviewState. Pure: the prior state is never modified and the only input
besides the arguments is the clock, which callers can pass in.

Rating scale:
5 - Mastery
4 - Confident
3 - Moderate (lowest passing rating)
2 - Weak
1 - Unfamiliar
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .errors import InvalidRating
from .models import DEFAULT_EASE_FACTOR, ReviewState

MIN_RATING = 1
MAX_RATING = 5


@dataclass(frozen=True)
class SM2Config:
    """Configuration for the SM-2 variant."""

    initial_ease: float = DEFAULT_EASE_FACTOR
    minimum_ease: float = 1.3
    first_interval: int = 1  # Days after the first success
    second_interval: int = 3  # Days after the second consecutive success
    pass_threshold: int = 3


def validate_rating(rating: object) -> int:
    """Return ``rating`` as an int, raising InvalidRating if it is not 1..5."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRating(rating)
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidRating(rating)
    return int(rating)


class IntervalScheduler:
    """
    Computes review intervals with a streak-based SM-2 variant.

    Success (rating >= 3) grows the interval: 1 day, then 3 days, then the
    previous interval times the ease factor. Failure resets the interval to
    one day and the streak to zero without touching the ease factor.
    """

    def __init__(self, config: SM2Config | None = None):
        self.config = config or SM2Config()

    def initial_state(self) -> ReviewState:
        return ReviewState(ease_factor=self.config.initial_ease)

    def apply(
        self,
        state: ReviewState | None,
        rating: int,
        now: datetime | None = None,
    ) -> ReviewState:
        """
        Calculate the state after a rating.

        Args:
            state: Prior state, or None for an item never rated before
            rating: Confidence rating 1-5
            now: Reference time (defaults to current UTC time)

        Returns:
            New ReviewState with interval, ease, streak and next review time

        Raises:
            InvalidRating: If rating is not an integer in 1..5
        """
        rating = validate_rating(rating)
        state = state or self.initial_state()
        now = now or datetime.now(timezone.utc)

        if rating >= self.config.pass_threshold:
            if state.streak == 0:
                interval = self.config.first_interval
            elif state.streak == 1:
                interval = self.config.second_interval
            else:
                # Uses the ease factor from before this rating
                interval = math.ceil(state.interval * state.ease_factor)
            streak = state.streak + 1

            # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
            miss = MAX_RATING - rating
            ease = state.ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
            ease = max(self.config.minimum_ease, ease)
        else:
            interval = self.config.first_interval
            streak = 0
            ease = state.ease_factor

        return ReviewState(
            interval=interval,
            next_review_at=now + timedelta(days=interval),
            ease_factor=ease,
            streak=streak,
        )


_default_scheduler = IntervalScheduler()


def apply(state: ReviewState | None, rating: int, now: datetime | None = None) -> ReviewState:
    """Apply a rating with the default SM-2 configuration."""
    return _default_scheduler.apply(state, rating, now)
