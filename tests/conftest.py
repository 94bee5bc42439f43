"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
in-memory store implementations, a controllable clock and the engine
services wired onto them.
"""
import sys
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from learnloop.core.errors import (  # noqa: E402
    ConstraintViolationError,
    DuplicateKeyError,
    NotFoundError,
    StaleWriteError,
    StoreError,
)
from learnloop.core.models import (  # noqa: E402
    Attempt,
    Difficulty,
    Question,
    QuizSession,
    RecentAttempt,
    ReviewState,
    TopicProgress,
)
from learnloop.learning.analytics import AnalyticsService  # noqa: E402
from learnloop.learning.progress_tracker import ProgressTracker  # noqa: E402
from learnloop.learning.question_bank import QuestionBank  # noqa: E402
from learnloop.learning.question_selector import QuestionSelector  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database driver)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: float = 0, **kwargs) -> None:
        self.now += timedelta(days=days, **kwargs)


# =============================================================================
# In-memory stores
# =============================================================================


class _FakeStore:
    """Base: set ``fail_with`` to make every call raise that StoreError."""

    def __init__(self):
        self.fail_with: StoreError | None = None
        self.calls = 0

    def _enter(self):
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with


class InMemoryQuestionStore(_FakeStore):
    def __init__(self):
        super().__init__()
        self.rows: dict[str, Question] = {}

    async def list_all(self):
        self._enter()
        return [replace(q) for q in self.rows.values()]

    async def list_by_topic(self, topic):
        self._enter()
        return [replace(q) for q in self.rows.values() if q.topic == topic]

    async def list_by_difficulty(self, difficulty):
        self._enter()
        return [replace(q) for q in self.rows.values() if q.difficulty == difficulty]

    async def get(self, question_id):
        self._enter()
        question = self.rows.get(question_id)
        return replace(question) if question else None

    async def create(self, question):
        self._enter()
        if question.id in self.rows:
            raise DuplicateKeyError(f"duplicate question {question.id}")
        self.rows[question.id] = replace(question)
        return replace(question)

    async def update(self, question):
        self._enter()
        if question.id not in self.rows:
            raise NotFoundError(f"question {question.id} not found")
        self.rows[question.id] = replace(question)
        return replace(question)

    async def delete(self, question_id):
        self._enter()
        if question_id not in self.rows:
            raise NotFoundError(f"question {question_id} not found")
        del self.rows[question_id]

    async def count_by_topic(self):
        self._enter()
        counts: dict[str, int] = {}
        for question in self.rows.values():
            counts[question.topic] = counts.get(question.topic, 0) + 1
        return dict(sorted(counts.items()))

    def add(self, question_id, topic, difficulty=Difficulty.MEDIUM, created_at=NOW):
        """Seed a question synchronously."""
        question = Question(
            id=question_id,
            topic=topic,
            prompt=f"Prompt {question_id}",
            answer=f"Answer {question_id}",
            difficulty=difficulty,
            created_at=created_at,
            updated_at=created_at,
        )
        self.rows[question_id] = question
        return question


class InMemorySessionStore(_FakeStore):
    def __init__(self):
        super().__init__()
        self.rows: dict[str, QuizSession] = {}

    async def create(self, session):
        self._enter()
        self.rows[session.id] = replace(session)
        return replace(session)

    async def get(self, session_id):
        self._enter()
        session = self.rows.get(session_id)
        return replace(session) if session else None

    async def update(self, session):
        self._enter()
        if session.id not in self.rows:
            raise NotFoundError(f"session {session.id} not found")
        stored = replace(self.rows[session.id], completed_at=session.completed_at)
        self.rows[session.id] = stored
        return replace(stored)


class InMemoryAttemptStore(_FakeStore):
    def __init__(self, questions: InMemoryQuestionStore, sessions: InMemorySessionStore):
        super().__init__()
        self.rows: list[Attempt] = []
        self._questions = questions
        self._sessions = sessions

    def _with_topic(self, attempt):
        return RecentAttempt(attempt=replace(attempt), topic=self._questions.rows[attempt.question_id].topic)

    def _learner_rows(self, learner_id):
        return [
            a for a in self.rows
            if self._sessions.rows.get(a.session_id)
            and self._sessions.rows[a.session_id].learner_id == learner_id
        ]

    async def create(self, attempt):
        """Append the attempt and bump its session's counters together."""
        self._enter()
        session = self._sessions.rows.get(attempt.session_id)
        if session is None:
            raise NotFoundError(f"session {attempt.session_id} not found")
        if attempt.question_id not in self._questions.rows:
            raise ConstraintViolationError(f"unknown question {attempt.question_id}")
        if any(a.id == attempt.id for a in self.rows):
            raise DuplicateKeyError(f"duplicate attempt {attempt.id}")
        self.rows.append(replace(attempt))
        self._sessions.rows[session.id] = replace(
            session,
            total_questions=session.total_questions + 1,
            correct_answers=session.correct_answers + (1 if attempt.is_correct else 0),
            incorrect_answers=session.incorrect_answers + (0 if attempt.is_correct else 1),
        )
        return replace(attempt)

    async def get(self, attempt_id):
        self._enter()
        return next((replace(a) for a in self.rows if a.id == attempt_id), None)

    async def list_all(self, since=None):
        self._enter()
        rows = [a for a in self.rows if since is None or a.attempted_at >= since]
        return [self._with_topic(a) for a in sorted(rows, key=lambda a: a.attempted_at)]

    async def list_by_session(self, session_id):
        self._enter()
        rows = [a for a in self.rows if a.session_id == session_id]
        return [replace(a) for a in sorted(rows, key=lambda a: a.attempted_at)]

    async def list_recent_by_learner(self, learner_id, limit):
        self._enter()
        rows = sorted(self._learner_rows(learner_id), key=lambda a: a.attempted_at, reverse=True)
        return [self._with_topic(a) for a in rows[:limit]]

    async def list_by_learner(self, learner_id, since=None):
        self._enter()
        rows = [a for a in self._learner_rows(learner_id) if since is None or a.attempted_at >= since]
        return [self._with_topic(a) for a in sorted(rows, key=lambda a: a.attempted_at)]

    def add(self, session_id, question_id, is_correct, attempted_at=NOW, response_time_ms=None):
        """Seed an attempt synchronously."""
        attempt = Attempt(
            id=f"a{len(self.rows) + 1}",
            session_id=session_id,
            question_id=question_id,
            is_correct=is_correct,
            response_time_ms=response_time_ms,
            attempted_at=attempted_at,
        )
        self.rows.append(attempt)
        return attempt


class InMemoryProgressStore(_FakeStore):
    """
    Compare-and-swap progress store.

    ``conflicts``: number of upcoming updates that lose to a concurrent writer.
    ``create_races``: number of upcoming creates that lose to a concurrent writer.
    The simulated writer commits an extra attempt before the loser fails.
    """

    def __init__(self):
        super().__init__()
        self.rows: dict[tuple[str, str], TopicProgress] = {}
        self.conflicts = 0
        self.create_races = 0

    async def get(self, learner_id, topic):
        self._enter()
        row = self.rows.get((learner_id, topic))
        return replace(row) if row else None

    async def list_by_learner(self, learner_id):
        self._enter()
        return [replace(p) for (learner, _), p in self.rows.items() if learner == learner_id]

    async def create(self, progress):
        self._enter()
        key = (progress.learner_id, progress.topic)
        if self.create_races > 0:
            self.create_races -= 1
            self.rows[key] = replace(progress, total_attempts=1, correct_attempts=1, mastery_level=100.0)
        if key in self.rows:
            raise DuplicateKeyError(f"duplicate progress {key}")
        self.rows[key] = replace(progress)
        return replace(progress)

    async def update(self, progress, expected_version):
        self._enter()
        key = (progress.learner_id, progress.topic)
        current = self.rows.get(key)
        if current is None:
            raise NotFoundError(f"progress {key} not found")
        if self.conflicts > 0:
            self.conflicts -= 1
            self.rows[key] = current.next_version(
                total_attempts=current.total_attempts + 1,
                correct_attempts=current.correct_attempts + 1,
            )
            current = self.rows[key]
        if current.version != expected_version:
            raise StaleWriteError(f"progress {key} at version {current.version}")
        self.rows[key] = replace(progress)
        return replace(progress)

    def add(self, learner_id, topic, mastery_level=0.0, last_practiced=NOW, total=0, correct=0):
        """Seed progress synchronously."""
        progress = TopicProgress(
            learner_id=learner_id,
            topic=topic,
            mastery_level=mastery_level,
            last_practiced=last_practiced,
            total_attempts=total,
            correct_attempts=correct,
        )
        self.rows[(learner_id, topic)] = progress
        return progress


class InMemoryReviewStore(_FakeStore):
    def __init__(self):
        super().__init__()
        self.rows: dict[tuple[str, str], ReviewState] = {}
        self.conflicts = 0

    async def get(self, learner_id, question_id):
        self._enter()
        row = self.rows.get((learner_id, question_id))
        return replace(row) if row else None

    async def list_due(self, learner_id, today: date):
        self._enter()
        return [
            replace(s) for (learner, _), s in self.rows.items()
            if learner == learner_id and s.is_due(today)
        ]

    async def create(self, state):
        self._enter()
        key = (state.learner_id, state.question_id)
        if key in self.rows:
            raise DuplicateKeyError(f"duplicate review state {key}")
        self.rows[key] = replace(state)
        return replace(state)

    async def update(self, state, expected_version):
        self._enter()
        key = (state.learner_id, state.question_id)
        current = self.rows.get(key)
        if current is None:
            raise NotFoundError(f"review state {key} not found")
        if self.conflicts > 0:
            self.conflicts -= 1
            self.rows[key] = replace(current, version=current.version + 1)
            current = self.rows[key]
        if current.version != expected_version:
            raise StaleWriteError(f"review state {key} at version {current.version}")
        self.rows[key] = replace(state)
        return replace(state)

    def add(self, learner_id, question_id, next_review, interval_days=1, repetitions=0):
        state = ReviewState(
            learner_id=learner_id,
            question_id=question_id,
            interval_days=interval_days,
            repetitions=repetitions,
            next_review=next_review,
        )
        self.rows[(learner_id, question_id)] = state
        return state


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def question_store():
    return InMemoryQuestionStore()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def attempt_store(question_store, session_store):
    return InMemoryAttemptStore(question_store, session_store)


@pytest.fixture
def progress_store():
    return InMemoryProgressStore()


@pytest.fixture
def review_store():
    return InMemoryReviewStore()


@pytest.fixture
def selector(question_store, attempt_store, progress_store, review_store, clock):
    return QuestionSelector(
        question_store, attempt_store, progress_store, review_store, clock=clock
    )


@pytest.fixture
def tracker(progress_store, question_store, review_store, clock):
    return ProgressTracker(progress_store, question_store, review_store, clock=clock)


@pytest.fixture
def bank(question_store, clock):
    import random

    return QuestionBank(question_store, clock=clock, rng=random.Random(7))


@pytest.fixture
def analytics(question_store, attempt_store, session_store, progress_store, tracker, clock):
    return AnalyticsService(
        question_store, attempt_store, session_store, progress_store, tracker, clock=clock
    )


@pytest.fixture
def sample_question():
    """Provide a sample question payload for testing."""
    return {
        "topic": "networking",
        "prompt": "Which layer of the OSI model handles routing?",
        "answer": "Network Layer (Layer 3)",
        "difficulty": "hard",
    }
