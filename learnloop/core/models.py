"""
Domain records shared by the engine, the services and the store adapters.

These are plain dataclasses. The SQLAlchemy tables in learnloop.db.models are
an adapter concern and are converted to and from these records at the store
boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from enum import Enum
from uuid import uuid4

SECONDS_PER_DAY = 86400


def utcnow() -> datetime:
    """Timezone-aware current time. Components accept a clock to override it."""
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid4())


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def whole_days_since(earlier: datetime, now: datetime) -> int:
    """
    Whole days elapsed between two timestamps.

    Floor division of the elapsed time by one day, so 23h59m is 0 days.
    Naive datetimes are treated as UTC.
    """
    delta = _as_aware(now) - _as_aware(earlier)
    return int(delta.total_seconds() // SECONDS_PER_DAY)


class Difficulty(str, Enum):
    """Question difficulty label."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass
class Question:
    """A question in the shared bank. Owned by the bank, not by a learner."""

    id: str
    topic: str
    prompt: str
    answer: str
    difficulty: Difficulty = Difficulty.MEDIUM
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Attempt:
    """One answer event. Append-only."""

    id: str
    session_id: str
    question_id: str
    is_correct: bool
    response_time_ms: int | None = None
    attempted_at: datetime = field(default_factory=utcnow)


@dataclass
class RecentAttempt:
    """An attempt joined with its question's topic."""

    attempt: Attempt
    topic: str

    @property
    def question_id(self) -> str:
        return self.attempt.question_id


@dataclass
class TopicProgress:
    """Per-(learner, topic) mastery state."""

    learner_id: str
    topic: str
    mastery_level: float = 0.0  # 0-100
    last_practiced: datetime = field(default_factory=utcnow)
    total_attempts: int = 0
    correct_attempts: int = 0
    version: int = 0
    id: str = field(default_factory=new_id)

    @property
    def success_rate(self) -> float | None:
        if self.total_attempts <= 0:
            return None
        return self.correct_attempts / self.total_attempts

    def days_since_practiced(self, now: datetime) -> int:
        return whole_days_since(self.last_practiced, now)

    def next_version(self, **changes) -> TopicProgress:
        """Copy with changes applied and the version bumped."""
        return replace(self, version=self.version + 1, **changes)


@dataclass
class QuizSession:
    """A run of attempts for one learner."""

    id: str
    learner_id: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    total_questions: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


@dataclass
class ReviewState:
    """Per-(learner, question) SM-2 scheduling state."""

    learner_id: str
    question_id: str
    ease_factor: float = 2.5
    interval_days: int = 1
    repetitions: int = 0
    next_review: date | None = None
    last_reviewed: datetime | None = None
    version: int = 0
    id: str = field(default_factory=new_id)

    def is_due(self, today: date) -> bool:
        """Never-scheduled states are due."""
        if self.next_review is None:
            return True
        return today >= self.next_review

    def days_overdue(self, today: date) -> int:
        if self.next_review is None:
            return 0
        return max(0, (today - self.next_review).days)
