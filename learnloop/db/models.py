"""
Question Bank and Learning Progress Models.

SQLAlchemy tables backing the store contracts:
- Questions and quiz sessions
- Append-only question attempts
- Per-learner topic progress (unique per learner/topic)
- Per-learner question review state (unique per learner/question)

Column types are kept portable so the same tables run on PostgreSQL and
SQLite.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from learnloop.core.models import utcnow


class Base(DeclarativeBase):
    pass


class QuestionRow(Base):
    """A question in the shared bank."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    topic: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    difficulty: Mapped[str] = mapped_column(
        String(16), nullable=False, default="medium", server_default="medium"
    )  # 'easy', 'medium', 'hard'

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<QuestionRow {self.id} topic={self.topic!r} difficulty={self.difficulty}>"


class QuizSessionRow(Base):
    """A run of attempts, optionally tied to a learner."""

    __tablename__ = "quiz_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    learner_id: Mapped[str | None] = mapped_column(Text, index=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    total_questions: Mapped[int] = mapped_column(Integer, default=0)
    correct_answers: Mapped[int] = mapped_column(Integer, default=0)
    incorrect_answers: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<QuizSessionRow {self.id} learner={self.learner_id} total={self.total_questions}>"


class QuestionAttemptRow(Base):
    """One answer event. Rows are never updated."""

    __tablename__ = "question_attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("quiz_sessions.id", ondelete="RESTRICT"), nullable=False
    )
    question_id: Mapped[str] = mapped_column(
        ForeignKey("questions.id", ondelete="RESTRICT"), nullable=False
    )
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    response_time_ms: Mapped[int | None] = mapped_column(Integer)
    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_attempts_session_time", "session_id", "attempted_at"),
        Index("idx_attempts_time", "attempted_at"),
    )


class TopicProgressRow(Base):
    """
    Mastery state per learner per topic.

    ``version`` increases on every write and guards compare-and-swap updates.
    """

    __tablename__ = "topic_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    learner_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    topic: Mapped[str] = mapped_column(Text, nullable=False)

    mastery_level: Mapped[float] = mapped_column(Float, default=0.0)  # 0-100
    last_practiced: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    correct_attempts: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (UniqueConstraint("learner_id", "topic", name="uq_learner_topic"),)

    def __repr__(self) -> str:
        return f"<TopicProgressRow learner={self.learner_id} topic={self.topic!r} mastery={self.mastery_level}>"


class ReviewStateRow(Base):
    """SM-2 state per learner per question."""

    __tablename__ = "review_states"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    learner_id: Mapped[str] = mapped_column(Text, nullable=False)
    question_id: Mapped[str] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )

    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval_days: Mapped[int] = mapped_column(Integer, default=1)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)
    next_review: Mapped[date | None] = mapped_column(Date)
    last_reviewed: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("learner_id", "question_id", name="uq_learner_question"),
        Index("idx_review_due", "learner_id", "next_review"),
    )
