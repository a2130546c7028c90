"""
Error taxonomy for the review engine.

ReviewEngineError is the base for everything the engine raises on purpose.
NothingDue is deliberately outside that hierarchy: it is a signal that a
learner has nothing to review, not a failure.
"""

from __future__ import annotations


class ReviewEngineError(Exception):
    """Base class for review engine errors."""


class ContentUnavailable(ReviewEngineError):
    """The content provider failed, timed out, or returned malformed output."""


class PersistenceFailed(ReviewEngineError):
    """
    A state store call did not complete.

    ``item_id`` is None when the failed call covers every item of the user.
    """

    def __init__(self, user_id: str, item_id: str | None = None, cause: BaseException | None = None):
        self.user_id = user_id
        self.item_id = item_id
        self.cause = cause
        target = f"{user_id}/{item_id}" if item_id is not None else user_id
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"State store failed for {target}{detail}")


class InvalidRating(ReviewEngineError, ValueError):
    """A confidence rating outside 1..5 was submitted."""

    def __init__(self, rating: object):
        self.rating = rating
        super().__init__(f"Confidence rating must be an integer in 1..5, got {rating!r}")


class InvalidAnswer(ReviewEngineError, ValueError):
    """An answer does not fit the shape of the exercise it answers."""


class SessionStateError(ReviewEngineError):
    """A session operation was called in the wrong phase."""


class NothingDue(Exception):
    """No due items and no unseen items: the session has nothing to show."""
