"""
Vocab: Adaptive Review Scheduling Engine.

Decides when each vocabulary item should be reviewed next and sequences
items within a practice session, including failure-driven re-queuing.

Components:
- Catalog: JSON loading of learning items
- IntervalScheduler: SM-2 interval algorithm
- build_queue: Due-then-new session queue
- ReviewSession: Session state machine
- BatchMistakeLoop: Batch quiz with mistake-correction passes
- GuidedCourse: One-word lessons with a batch review every 10 words
- ExerciseSource: Content provider with local fallback
- StateStore: In-memory, SQL and outbox persistence
"""

from .batch import BatchMistakeLoop, BatchResult, Learner, chunk_batches
from .catalog import Catalog
from .content import ContentProvider, ExerciseSource, GeminiContentProvider
from .errors import (
    ContentUnavailable,
    InvalidAnswer,
    InvalidRating,
    NothingDue,
    PersistenceFailed,
    ReviewEngineError,
    SessionStateError,
)
from .exercises import (
    AnswerResult,
    ExerciseOption,
    FreeText,
    FreeTextMode,
    LocalExerciseFactory,
    MultipleChoice,
    grade_answer,
)
from .guided import CourseResult, GuidedCourse, LessonLearner
from .interval import IntervalScheduler, SM2Config, apply
from .models import ConfidenceRating, ItemContent, LearningItem, ReviewState
from .queue_builder import build_queue
from .session import EventTag, ReviewSession, SessionEvent, SessionPhase, SessionSummary
from .state_store import InMemoryStateStore, OutboxStateStore, SQLStateStore, StateStore
from .stats import ProgressStats, summarize_progress

__all__ = [
    # Data model
    "LearningItem",
    "ReviewState",
    "ConfidenceRating",
    "ItemContent",
    "Catalog",
    # Scheduling
    "SM2Config",
    "IntervalScheduler",
    "apply",
    "build_queue",
    # Exercises and content
    "MultipleChoice",
    "FreeText",
    "FreeTextMode",
    "ExerciseOption",
    "AnswerResult",
    "grade_answer",
    "LocalExerciseFactory",
    "ContentProvider",
    "GeminiContentProvider",
    "ExerciseSource",
    # Sessions
    "ReviewSession",
    "SessionPhase",
    "SessionEvent",
    "SessionSummary",
    "EventTag",
    "BatchMistakeLoop",
    "BatchResult",
    "Learner",
    "chunk_batches",
    "GuidedCourse",
    "CourseResult",
    "LessonLearner",
    # Persistence
    "StateStore",
    "InMemoryStateStore",
    "SQLStateStore",
    "OutboxStateStore",
    # Progress
    "ProgressStats",
    "summarize_progress",
    # Errors
    "ReviewEngineError",
    "ContentUnavailable",
    "PersistenceFailed",
    "InvalidRating",
    "InvalidAnswer",
    "SessionStateError",
    "NothingDue",
]
