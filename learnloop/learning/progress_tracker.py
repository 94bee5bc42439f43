"""
Topic Progress Tracker with optimistic concurrency.

This module keeps per-(learner, topic) progress current after each attempt
and maintains per-(learner, question) SM-2 review state.

Writes are read-then-write. To avoid lost updates between concurrent
attempts, every update is a compare-and-swap on the record's version: a
stale write (or losing a create race) re-reads the record and recomputes,
up to ``max_write_attempts`` times. Store unavailability and constraint
violations other than a duplicate key are never retried.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from loguru import logger

from config import Settings
from learnloop.core.errors import (
    DuplicateKeyError,
    EngineError,
    ErrorKind,
    StaleWriteError,
    store_operation,
)
from learnloop.core.mastery import MasteryTier, accuracy_mastery, update_mastery
from learnloop.core.models import ReviewState, TopicProgress, utcnow
from learnloop.core.ports import QuestionStore, ReviewStateStore, TopicProgressStore
from learnloop.study.priority_scorer import PriorityScorer
from learnloop.study.scheduler import SM2Config, SM2Scheduler, performance_from_response

T = TypeVar("T")


@dataclass
class TopicRecommendation:
    """Topic-level study recommendation."""

    topic: str
    reason: str
    priority: float
    mastery_level: float | None  # None when the topic has no progress


class ProgressTracker:
    """
    Track learner mastery per topic.

    Two mastery update rules are exposed:
    - record_attempt_and_update_progress: boolean attempt, accuracy-based rule
    - update_mastery_level: continuous performance sample, learning-rate rule
    """

    DEFAULT_WRITE_ATTEMPTS = 3

    def __init__(
        self,
        progress_store: TopicProgressStore,
        question_store: QuestionStore,
        review_store: ReviewStateStore | None = None,
        sm2: SM2Scheduler | None = None,
        scorer: PriorityScorer | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_write_attempts: int = DEFAULT_WRITE_ATTEMPTS,
        expected_response_ms: int = 10000,
    ):
        """
        Initialize tracker with its stores.

        Args:
            progress_store: Per-topic progress
            question_store: Question bank (for the topic list)
            review_store: Per-question SM-2 state (needed for record_review)
            sm2: SM-2 scheduler
            scorer: Supplies the recency bonus for recommendations
            clock: Source of the current time
            max_write_attempts: Compare-and-swap attempts before giving up
            expected_response_ms: Latency that separates hesitant from slow answers
        """
        self.progress = progress_store
        self.questions = question_store
        self.reviews = review_store
        self.sm2 = sm2 or SM2Scheduler()
        self.scorer = scorer or PriorityScorer()
        self._clock = clock
        self.max_write_attempts = max(1, max_write_attempts)
        self.expected_response_ms = expected_response_ms

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        progress_store: TopicProgressStore,
        question_store: QuestionStore,
        review_store: ReviewStateStore | None = None,
    ) -> ProgressTracker:
        return cls(
            progress_store,
            question_store,
            review_store,
            sm2=SM2Scheduler(SM2Config(initial_easiness=settings.sm2_initial_ease)),
            max_write_attempts=settings.progress_write_attempts,
            expected_response_ms=settings.expected_response_ms,
        )

    async def _write_with_retry(self, operation: str, write: Callable[[], Awaitable[T]]) -> T:
        """Run a read-compute-write closure, re-running it on write conflicts."""
        last_conflict: Exception | None = None
        for attempt in range(1, self.max_write_attempts + 1):
            try:
                with store_operation(operation):
                    return await write()
            except EngineError as exc:
                if not isinstance(exc.cause, (StaleWriteError, DuplicateKeyError)):
                    raise
                last_conflict = exc.cause
                logger.debug(
                    f"Write conflict during '{operation}' "
                    f"(attempt {attempt}/{self.max_write_attempts}): {exc.cause}"
                )

        raise EngineError(
            operation,
            ErrorKind.CONFLICT,
            cause=last_conflict,
            detail=f"gave up after {self.max_write_attempts} conflicting writes",
        )

    # ==================== Topic progress ====================

    async def record_attempt_and_update_progress(
        self, learner_id: str, topic: str, is_correct: bool
    ) -> TopicProgress:
        """
        Count one attempt and recompute accuracy-based mastery.

        Args:
            learner_id: Learner identifier
            topic: Topic of the attempted question
            is_correct: Whether the attempt was correct

        Returns:
            The stored TopicProgress
        """

        async def write() -> TopicProgress:
            existing = await self.progress.get(learner_id, topic)
            now = self._clock()

            if existing is None:
                correct = 1 if is_correct else 0
                return await self.progress.create(
                    TopicProgress(
                        learner_id=learner_id,
                        topic=topic,
                        mastery_level=accuracy_mastery(correct, 1),
                        last_practiced=now,
                        total_attempts=1,
                        correct_attempts=correct,
                    )
                )

            total = existing.total_attempts + 1
            correct = existing.correct_attempts + (1 if is_correct else 0)
            updated = existing.next_version(
                total_attempts=total,
                correct_attempts=correct,
                mastery_level=accuracy_mastery(correct, total),
                last_practiced=now,
            )
            return await self.progress.update(updated, expected_version=existing.version)

        progress = await self._write_with_retry("update topic progress", write)
        logger.info(
            f"Progress {learner_id}/{topic}: {progress.correct_attempts}/{progress.total_attempts} "
            f"correct, mastery {progress.mastery_level:.1f}"
        )
        return progress

    async def update_mastery_level(
        self, learner_id: str, topic: str, performance: float
    ) -> TopicProgress:
        """
        Apply a continuous performance sample (0-1) to a topic's mastery.

        Existing progress keeps its counters; only mastery and last_practiced
        change. A first sample creates the row with one attempt, counted
        correct when performance > 0.5.
        """

        async def write() -> TopicProgress:
            existing = await self.progress.get(learner_id, topic)
            now = self._clock()

            if existing is None:
                return await self.progress.create(
                    TopicProgress(
                        learner_id=learner_id,
                        topic=topic,
                        mastery_level=update_mastery(0.0, performance, 0),
                        last_practiced=now,
                        total_attempts=1,
                        correct_attempts=1 if performance > 0.5 else 0,
                    )
                )

            updated = existing.next_version(
                mastery_level=update_mastery(
                    existing.mastery_level, performance, existing.total_attempts
                ),
                last_practiced=now,
            )
            return await self.progress.update(updated, expected_version=existing.version)

        return await self._write_with_retry("update mastery level", write)

    async def get_progress(self, learner_id: str) -> list[TopicProgress]:
        """All topic progress for a learner, most recently practiced first."""
        with store_operation("get learner progress"):
            rows = await self.progress.list_by_learner(learner_id)
        return sorted(rows, key=lambda p: p.last_practiced, reverse=True)

    async def get_topic_recommendations(self, learner_id: str) -> list[TopicRecommendation]:
        """
        Recommend topics by mastery tier plus the recency bonus.

        Returns:
            One recommendation per topic in the bank, highest priority first
        """
        with store_operation("get topic recommendations"):
            progress_rows = await self.progress.list_by_learner(learner_id)
            topic_counts = await self.questions.count_by_topic()

        progress_by_topic = {p.topic: p for p in progress_rows}
        now = self._clock()

        recommendations = []
        for topic in topic_counts:
            progress = progress_by_topic.get(topic)
            tier = MasteryTier.from_level(progress.mastery_level if progress else None)
            priority = tier.base_priority + self.scorer.recency_bonus(progress, now)
            recommendations.append(
                TopicRecommendation(
                    topic=topic,
                    reason=tier.reason,
                    priority=min(100.0, float(priority)),
                    mastery_level=progress.mastery_level if progress else None,
                )
            )

        recommendations.sort(key=lambda r: -r.priority)
        return recommendations

    # ==================== Per-question review state ====================

    async def record_review(
        self,
        learner_id: str,
        question_id: str,
        is_correct: bool,
        response_time_ms: int | None = None,
    ) -> ReviewState:
        """
        Advance a question's SM-2 state after an attempt.

        Raises:
            ValueError: if the tracker was built without a review store
        """
        if self.reviews is None:
            raise ValueError("ProgressTracker was constructed without a review store")

        reviews = self.reviews
        performance = performance_from_response(
            is_correct, response_time_ms, self.expected_response_ms
        )

        async def write() -> ReviewState:
            existing = await reviews.get(learner_id, question_id)
            now = self._clock()
            if existing is None:
                fresh = self.sm2.initial_state(learner_id, question_id)
                return await reviews.create(self.sm2.advance(fresh, performance, now))
            advanced = self.sm2.advance(existing, performance, now)
            return await reviews.update(advanced, expected_version=existing.version)

        state = await self._write_with_retry("update review schedule", write)
        logger.debug(
            f"Review {learner_id}/{question_id}: perf={performance:.1f} "
            f"interval={state.interval_days}d ef={state.ease_factor:.2f} next={state.next_review}"
        )
        return state
