"""
Core Module - Shared domain records, store contracts and mastery rules.

Components:
- models: Domain dataclasses (Question, Attempt, TopicProgress, QuizSession, ReviewState)
- ports: Store protocols the engine consumes
- mastery: Continuous and accuracy-based mastery update rules
- errors: Store/engine error taxonomy
- schemas: Pydantic drafts for question-bank writes
"""

from learnloop.core.errors import (
    ConstraintViolationError,
    DuplicateKeyError,
    EngineError,
    ErrorKind,
    InvalidInputError,
    NotFoundError,
    StaleWriteError,
    StoreError,
    StoreUnavailableError,
    store_operation,
)
from learnloop.core.mastery import MasteryTier, accuracy_mastery, update_mastery
from learnloop.core.models import (
    Attempt,
    Difficulty,
    Question,
    QuizSession,
    RecentAttempt,
    ReviewState,
    TopicProgress,
)

__all__ = [
    # Mastery
    "MasteryTier",
    "accuracy_mastery",
    "update_mastery",
    # Models
    "Attempt",
    "Difficulty",
    "Question",
    "QuizSession",
    "RecentAttempt",
    "ReviewState",
    "TopicProgress",
    # Errors
    "ConstraintViolationError",
    "DuplicateKeyError",
    "EngineError",
    "ErrorKind",
    "InvalidInputError",
    "NotFoundError",
    "StaleWriteError",
    "StoreError",
    "StoreUnavailableError",
    "store_operation",
]
