"""
Store contracts consumed by the engine.

The engine depends on these protocols only. Implementations raise the
StoreError family from learnloop.core.errors and never leak driver errors.
Single-row reads return None for absence; updates and deletes of a missing
record raise NotFoundError.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from learnloop.core.models import (
    Attempt,
    Difficulty,
    Question,
    QuizSession,
    RecentAttempt,
    ReviewState,
    TopicProgress,
)


class QuestionStore(Protocol):
    async def list_all(self) -> list[Question]: ...

    async def list_by_topic(self, topic: str) -> list[Question]: ...

    async def list_by_difficulty(self, difficulty: Difficulty) -> list[Question]: ...

    async def get(self, question_id: str) -> Question | None: ...

    async def create(self, question: Question) -> Question: ...

    async def update(self, question: Question) -> Question: ...

    async def delete(self, question_id: str) -> None: ...

    async def count_by_topic(self) -> dict[str, int]: ...


class AttemptStore(Protocol):
    async def create(self, attempt: Attempt) -> Attempt:
        """
        Append an attempt and bump its session's counters in one transaction.

        Raises NotFoundError (and stores nothing) if the session does not
        exist, DuplicateKeyError if the attempt id is already taken.
        """
        ...

    async def get(self, attempt_id: str) -> Attempt | None: ...

    async def list_by_session(self, session_id: str) -> list[Attempt]:
        """Attempts of one session, oldest first."""
        ...

    async def list_recent_by_learner(self, learner_id: str, limit: int) -> list[RecentAttempt]:
        """Most recent attempts across the learner's sessions, newest first."""
        ...

    async def list_by_learner(
        self, learner_id: str, since: datetime | None = None
    ) -> list[RecentAttempt]:
        """All attempts of a learner, oldest first."""
        ...

    async def list_all(self, since: datetime | None = None) -> list[RecentAttempt]:
        """Attempts of every session, anonymous ones included, oldest first."""
        ...


class TopicProgressStore(Protocol):
    async def get(self, learner_id: str, topic: str) -> TopicProgress | None: ...

    async def list_by_learner(self, learner_id: str) -> list[TopicProgress]: ...

    async def create(self, progress: TopicProgress) -> TopicProgress:
        """Raises DuplicateKeyError if (learner, topic) already exists."""
        ...

    async def update(self, progress: TopicProgress, expected_version: int) -> TopicProgress:
        """Raises StaleWriteError if the stored version differs from expected_version."""
        ...


class SessionStore(Protocol):
    async def create(self, session: QuizSession) -> QuizSession: ...

    async def get(self, session_id: str) -> QuizSession | None: ...

    async def update(self, session: QuizSession) -> QuizSession:
        """Store ``completed_at``. Counters are owned by AttemptStore.create."""
        ...


class ReviewStateStore(Protocol):
    async def get(self, learner_id: str, question_id: str) -> ReviewState | None: ...

    async def list_due(self, learner_id: str, today: date) -> list[ReviewState]: ...

    async def create(self, state: ReviewState) -> ReviewState: ...

    async def update(self, state: ReviewState, expected_version: int) -> ReviewState: ...
