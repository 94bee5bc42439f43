"""
SQLAlchemy implementations of the store contracts.

Every method runs in its own transaction (Database.session_scope) and
translates SQLAlchemy/driver failures into the StoreError family, so no
driver exception type reaches the engine.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from learnloop.core.errors import (
    ConstraintViolationError,
    DuplicateKeyError,
    NotFoundError,
    StaleWriteError,
    StoreUnavailableError,
)
from learnloop.core.models import (
    Attempt,
    Difficulty,
    Question,
    QuizSession,
    RecentAttempt,
    ReviewState,
    TopicProgress,
)
from learnloop.db.database import Database
from learnloop.db.models import (
    QuestionAttemptRow,
    QuestionRow,
    QuizSessionRow,
    ReviewStateRow,
    TopicProgressRow,
)


UNIQUE_VIOLATION_SQLSTATE = "23505"


def _is_unique_violation(error: IntegrityError) -> bool:
    """True for duplicate-key errors on PostgreSQL (asyncpg) and SQLite."""
    orig = error.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == UNIQUE_VIOLATION_SQLSTATE
    message = str(orig)
    return "UNIQUE constraint failed" in message or "duplicate key" in message


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Map SQLAlchemy and connection errors onto the store taxonomy."""
    try:
        yield
    except IntegrityError as e:
        if _is_unique_violation(e):
            raise DuplicateKeyError(f"{operation}: {e.orig}", cause=e) from e
        raise ConstraintViolationError(f"{operation}: {e.orig}", cause=e) from e
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Store unavailable during {operation}: {e}")
        raise StoreUnavailableError(f"{operation}: {e}", cause=e) from e


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# =============================================================================
# Row <-> record conversion
# =============================================================================


def _question(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        topic=row.topic,
        prompt=row.question,
        answer=row.answer,
        difficulty=Difficulty(row.difficulty),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _attempt(row: QuestionAttemptRow) -> Attempt:
    return Attempt(
        id=row.id,
        session_id=row.session_id,
        question_id=row.question_id,
        is_correct=row.is_correct,
        response_time_ms=row.response_time_ms,
        attempted_at=_aware(row.attempted_at),
    )


def _session(row: QuizSessionRow) -> QuizSession:
    return QuizSession(
        id=row.id,
        learner_id=row.learner_id,
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        total_questions=row.total_questions,
        correct_answers=row.correct_answers,
        incorrect_answers=row.incorrect_answers,
    )


def _progress(row: TopicProgressRow) -> TopicProgress:
    return TopicProgress(
        id=row.id,
        learner_id=row.learner_id,
        topic=row.topic,
        mastery_level=row.mastery_level,
        last_practiced=_aware(row.last_practiced),
        total_attempts=row.total_attempts,
        correct_attempts=row.correct_attempts,
        version=row.version,
    )


def _review(row: ReviewStateRow) -> ReviewState:
    return ReviewState(
        id=row.id,
        learner_id=row.learner_id,
        question_id=row.question_id,
        ease_factor=row.ease_factor,
        interval_days=row.interval_days,
        repetitions=row.repetitions,
        next_review=row.next_review,
        last_reviewed=_aware(row.last_reviewed),
        version=row.version,
    )


class _SqlStore:
    def __init__(self, database: Database):
        self.db = database


# =============================================================================
# Stores
# =============================================================================


class SqlQuestionStore(_SqlStore):
    async def list_all(self) -> list[Question]:
        with _translate_errors("list questions"):
            async with self.db.session_scope() as session:
                rows = await session.scalars(select(QuestionRow).order_by(QuestionRow.created_at))
                return [_question(r) for r in rows]

    async def list_by_topic(self, topic: str) -> list[Question]:
        with _translate_errors("list questions by topic"):
            async with self.db.session_scope() as session:
                rows = await session.scalars(
                    select(QuestionRow)
                    .where(QuestionRow.topic == topic)
                    .order_by(QuestionRow.created_at)
                )
                return [_question(r) for r in rows]

    async def list_by_difficulty(self, difficulty: Difficulty) -> list[Question]:
        with _translate_errors("list questions by difficulty"):
            async with self.db.session_scope() as session:
                rows = await session.scalars(
                    select(QuestionRow)
                    .where(QuestionRow.difficulty == Difficulty(difficulty).value)
                    .order_by(QuestionRow.created_at)
                )
                return [_question(r) for r in rows]

    async def get(self, question_id: str) -> Question | None:
        with _translate_errors("get question"):
            async with self.db.session_scope() as session:
                row = await session.get(QuestionRow, question_id)
                return _question(row) if row else None

    async def create(self, question: Question) -> Question:
        with _translate_errors("create question"):
            async with self.db.session_scope() as session:
                row = QuestionRow(
                    id=question.id,
                    topic=question.topic,
                    question=question.prompt,
                    answer=question.answer,
                    difficulty=Difficulty(question.difficulty).value,
                    created_at=question.created_at,
                    updated_at=question.updated_at,
                )
                session.add(row)
                await session.flush()
                return _question(row)

    async def update(self, question: Question) -> Question:
        with _translate_errors("update question"):
            async with self.db.session_scope() as session:
                row = await session.get(QuestionRow, question.id)
                if row is None:
                    raise NotFoundError(f"question {question.id} not found")
                row.topic = question.topic
                row.question = question.prompt
                row.answer = question.answer
                row.difficulty = Difficulty(question.difficulty).value
                row.updated_at = question.updated_at
                await session.flush()
                return _question(row)

    async def delete(self, question_id: str) -> None:
        with _translate_errors("delete question"):
            async with self.db.session_scope() as session:
                result = await session.execute(
                    delete(QuestionRow).where(QuestionRow.id == question_id)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"question {question_id} not found")

    async def count_by_topic(self) -> dict[str, int]:
        with _translate_errors("count questions by topic"):
            async with self.db.session_scope() as session:
                result = await session.execute(
                    select(QuestionRow.topic, func.count(QuestionRow.id))
                    .group_by(QuestionRow.topic)
                    .order_by(QuestionRow.topic)
                )
                return {topic: count for topic, count in result.all()}


class SqlAttemptStore(_SqlStore):
    async def create(self, attempt: Attempt) -> Attempt:
        with _translate_errors("create attempt"):
            async with self.db.session_scope() as session:
                # Counters move with the attempt; a failed insert rolls both back
                correct = 1 if attempt.is_correct else 0
                result = await session.execute(
                    update(QuizSessionRow)
                    .where(QuizSessionRow.id == attempt.session_id)
                    .values(
                        total_questions=QuizSessionRow.total_questions + 1,
                        correct_answers=QuizSessionRow.correct_answers + correct,
                        incorrect_answers=QuizSessionRow.incorrect_answers + (1 - correct),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"quiz session {attempt.session_id} not found")

                row = QuestionAttemptRow(
                    id=attempt.id,
                    session_id=attempt.session_id,
                    question_id=attempt.question_id,
                    is_correct=attempt.is_correct,
                    response_time_ms=attempt.response_time_ms,
                    attempted_at=attempt.attempted_at,
                )
                session.add(row)
                await session.flush()
                return _attempt(row)

    async def get(self, attempt_id: str) -> Attempt | None:
        with _translate_errors("get attempt"):
            async with self.db.session_scope() as session:
                row = await session.get(QuestionAttemptRow, attempt_id)
                return _attempt(row) if row else None

    async def list_by_session(self, session_id: str) -> list[Attempt]:
        with _translate_errors("list session attempts"):
            async with self.db.session_scope() as session:
                rows = await session.scalars(
                    select(QuestionAttemptRow)
                    .where(QuestionAttemptRow.session_id == session_id)
                    .order_by(QuestionAttemptRow.attempted_at)
                )
                return [_attempt(r) for r in rows]

    def _attempts_with_topic(self, learner_id: str | None = None):
        stmt = (
            select(QuestionAttemptRow, QuestionRow.topic)
            .join(QuizSessionRow, QuestionAttemptRow.session_id == QuizSessionRow.id)
            .join(QuestionRow, QuestionAttemptRow.question_id == QuestionRow.id)
        )
        if learner_id is not None:
            stmt = stmt.where(QuizSessionRow.learner_id == learner_id)
        return stmt

    async def _history(
        self, operation: str, learner_id: str | None, since: datetime | None
    ) -> list[RecentAttempt]:
        with _translate_errors(operation):
            async with self.db.session_scope() as session:
                stmt = self._attempts_with_topic(learner_id)
                if since is not None:
                    stmt = stmt.where(QuestionAttemptRow.attempted_at >= since)
                result = await session.execute(stmt.order_by(QuestionAttemptRow.attempted_at))
                return [RecentAttempt(attempt=_attempt(row), topic=topic) for row, topic in result.all()]

    async def list_recent_by_learner(self, learner_id: str, limit: int) -> list[RecentAttempt]:
        with _translate_errors("list recent attempts"):
            async with self.db.session_scope() as session:
                result = await session.execute(
                    self._attempts_with_topic(learner_id)
                    .order_by(QuestionAttemptRow.attempted_at.desc())
                    .limit(limit)
                )
                return [RecentAttempt(attempt=_attempt(row), topic=topic) for row, topic in result.all()]

    async def list_by_learner(
        self, learner_id: str, since: datetime | None = None
    ) -> list[RecentAttempt]:
        return await self._history("list learner attempts", learner_id, since)

    async def list_all(self, since: datetime | None = None) -> list[RecentAttempt]:
        return await self._history("list all attempts", None, since)


class SqlTopicProgressStore(_SqlStore):
    async def get(self, learner_id: str, topic: str) -> TopicProgress | None:
        with _translate_errors("get topic progress"):
            async with self.db.session_scope() as session:
                row = await session.scalar(
                    select(TopicProgressRow).where(
                        TopicProgressRow.learner_id == learner_id,
                        TopicProgressRow.topic == topic,
                    )
                )
                return _progress(row) if row else None

    async def list_by_learner(self, learner_id: str) -> list[TopicProgress]:
        with _translate_errors("list topic progress"):
            async with self.db.session_scope() as session:
                rows = await session.scalars(
                    select(TopicProgressRow)
                    .where(TopicProgressRow.learner_id == learner_id)
                    .order_by(TopicProgressRow.topic)
                )
                return [_progress(r) for r in rows]

    async def create(self, progress: TopicProgress) -> TopicProgress:
        with _translate_errors("create topic progress"):
            async with self.db.session_scope() as session:
                row = TopicProgressRow(
                    id=progress.id,
                    learner_id=progress.learner_id,
                    topic=progress.topic,
                    mastery_level=progress.mastery_level,
                    last_practiced=progress.last_practiced,
                    total_attempts=progress.total_attempts,
                    correct_attempts=progress.correct_attempts,
                    version=progress.version,
                )
                session.add(row)
                await session.flush()
                return _progress(row)

    async def update(self, progress: TopicProgress, expected_version: int) -> TopicProgress:
        with _translate_errors("update topic progress"):
            async with self.db.session_scope() as session:
                result = await session.execute(
                    update(TopicProgressRow)
                    .where(
                        TopicProgressRow.learner_id == progress.learner_id,
                        TopicProgressRow.topic == progress.topic,
                        TopicProgressRow.version == expected_version,
                    )
                    .values(
                        mastery_level=progress.mastery_level,
                        last_practiced=progress.last_practiced,
                        total_attempts=progress.total_attempts,
                        correct_attempts=progress.correct_attempts,
                        version=progress.version,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    current = await session.scalar(
                        select(TopicProgressRow.version).where(
                            TopicProgressRow.learner_id == progress.learner_id,
                            TopicProgressRow.topic == progress.topic,
                        )
                    )
                    if current is None:
                        raise NotFoundError(
                            f"progress for {progress.learner_id}/{progress.topic} not found"
                        )
                    raise StaleWriteError(
                        f"progress for {progress.learner_id}/{progress.topic} is at version "
                        f"{current}, expected {expected_version}"
                    )
                return progress


class SqlSessionStore(_SqlStore):
    async def create(self, quiz_session: QuizSession) -> QuizSession:
        with _translate_errors("create quiz session"):
            async with self.db.session_scope() as session:
                row = QuizSessionRow(
                    id=quiz_session.id,
                    learner_id=quiz_session.learner_id,
                    started_at=quiz_session.started_at,
                    completed_at=quiz_session.completed_at,
                    total_questions=quiz_session.total_questions,
                    correct_answers=quiz_session.correct_answers,
                    incorrect_answers=quiz_session.incorrect_answers,
                )
                session.add(row)
                await session.flush()
                return _session(row)

    async def get(self, session_id: str) -> QuizSession | None:
        with _translate_errors("get quiz session"):
            async with self.db.session_scope() as session:
                row = await session.get(QuizSessionRow, session_id)
                return _session(row) if row else None

    async def update(self, quiz_session: QuizSession) -> QuizSession:
        with _translate_errors("update quiz session"):
            async with self.db.session_scope() as session:
                row = await session.get(QuizSessionRow, quiz_session.id)
                if row is None:
                    raise NotFoundError(f"quiz session {quiz_session.id} not found")
                row.completed_at = quiz_session.completed_at
                await session.flush()
                return _session(row)


class SqlReviewStateStore(_SqlStore):
    async def get(self, learner_id: str, question_id: str) -> ReviewState | None:
        with _translate_errors("get review state"):
            async with self.db.session_scope() as session:
                row = await session.scalar(
                    select(ReviewStateRow).where(
                        ReviewStateRow.learner_id == learner_id,
                        ReviewStateRow.question_id == question_id,
                    )
                )
                return _review(row) if row else None

    async def list_due(self, learner_id: str, today: date) -> list[ReviewState]:
        with _translate_errors("list due reviews"):
            async with self.db.session_scope() as session:
                rows = await session.scalars(
                    select(ReviewStateRow)
                    .where(
                        ReviewStateRow.learner_id == learner_id,
                        (ReviewStateRow.next_review.is_(None))
                        | (ReviewStateRow.next_review <= today),
                    )
                    .order_by(ReviewStateRow.next_review)
                )
                return [_review(r) for r in rows]

    async def create(self, state: ReviewState) -> ReviewState:
        with _translate_errors("create review state"):
            async with self.db.session_scope() as session:
                row = ReviewStateRow(
                    id=state.id,
                    learner_id=state.learner_id,
                    question_id=state.question_id,
                    ease_factor=state.ease_factor,
                    interval_days=state.interval_days,
                    repetitions=state.repetitions,
                    next_review=state.next_review,
                    last_reviewed=state.last_reviewed,
                    version=state.version,
                )
                session.add(row)
                await session.flush()
                return _review(row)

    async def update(self, state: ReviewState, expected_version: int) -> ReviewState:
        with _translate_errors("update review state"):
            async with self.db.session_scope() as session:
                result = await session.execute(
                    update(ReviewStateRow)
                    .where(
                        ReviewStateRow.learner_id == state.learner_id,
                        ReviewStateRow.question_id == state.question_id,
                        ReviewStateRow.version == expected_version,
                    )
                    .values(
                        ease_factor=state.ease_factor,
                        interval_days=state.interval_days,
                        repetitions=state.repetitions,
                        next_review=state.next_review,
                        last_reviewed=state.last_reviewed,
                        version=state.version,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    exists = await session.scalar(
                        select(ReviewStateRow.id).where(
                            ReviewStateRow.learner_id == state.learner_id,
                            ReviewStateRow.question_id == state.question_id,
                        )
                    )
                    if exists is None:
                        raise NotFoundError(
                            f"review state for {state.learner_id}/{state.question_id} not found"
                        )
                    raise StaleWriteError(
                        f"review state for {state.learner_id}/{state.question_id} changed concurrently"
                    )
                return state
