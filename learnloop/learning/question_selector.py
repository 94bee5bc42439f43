"""
Question Selection for Adaptive Learning.

Read-only queries over the question bank, the learner's topic progress and
attempt history:

- Ranked candidates: every question scored by PriorityScorer
- Topic due list: topics whose time since practice exceeds a mastery-tiered threshold
- Scheduled reviews: questions whose persisted SM-2 review date has arrived
- Learning recommendations: per-question priority with a human-readable reason
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from config import Settings
from learnloop.core.errors import store_operation
from learnloop.core.models import Question, TopicProgress, utcnow
from learnloop.core.ports import AttemptStore, QuestionStore, ReviewStateStore, TopicProgressStore
from learnloop.study.priority_scorer import PriorityScorer, ScoredQuestion


@dataclass
class QuestionRecommendation:
    """Why a question is worth practicing next."""

    question_id: str
    topic: str
    priority: float
    reason: str


class QuestionSelector:
    """
    Select questions for study sessions.

    Strategies:
    - Priority-ranked: mastery gap, recency, difficulty, repetition, success rate
    - Topic review: mastery-tiered review thresholds (7/3/1 days)
    - Per-question review: SM-2 next-review dates
    """

    RECENT_ATTEMPT_WINDOW = 20
    DEFAULT_COUNT = 10
    RECOMMENDATION_LIMIT = 20

    # (minimum mastery, review interval in days), checked in order
    REVIEW_THRESHOLDS: tuple[tuple[float, int], ...] = ((80, 7), (60, 3))
    DEFAULT_REVIEW_DAYS = 1

    def __init__(
        self,
        question_store: QuestionStore,
        attempt_store: AttemptStore,
        progress_store: TopicProgressStore,
        review_store: ReviewStateStore | None = None,
        scorer: PriorityScorer | None = None,
        clock: Callable[[], datetime] = utcnow,
        recent_attempt_window: int = RECENT_ATTEMPT_WINDOW,
        default_count: int = DEFAULT_COUNT,
        recommendation_limit: int = RECOMMENDATION_LIMIT,
    ):
        """
        Initialize selector with its stores.

        Args:
            question_store: Question bank
            attempt_store: Attempt history
            progress_store: Per-topic progress
            review_store: Per-question SM-2 state (needed for get_scheduled_reviews)
            scorer: Priority scorer (defaults to PriorityScorer)
            clock: Source of the current time
            recent_attempt_window: Attempts that count as recently seen
            default_count: Questions returned when no count is given
            recommendation_limit: Recommendations returned when no limit is given
        """
        self.questions = question_store
        self.attempts = attempt_store
        self.progress = progress_store
        self.reviews = review_store
        self.scorer = scorer or PriorityScorer()
        self._clock = clock
        self.recent_attempt_window = recent_attempt_window
        self.default_count = default_count
        self.recommendation_limit = recommendation_limit

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        question_store: QuestionStore,
        attempt_store: AttemptStore,
        progress_store: TopicProgressStore,
        review_store: ReviewStateStore | None = None,
    ) -> QuestionSelector:
        return cls(
            question_store,
            attempt_store,
            progress_store,
            review_store,
            recent_attempt_window=settings.recent_attempt_window,
            default_count=settings.default_question_count,
            recommendation_limit=settings.recommendation_limit,
        )

    # ==================== Ranked candidates ====================

    async def rank_questions(self, learner_id: str) -> list[ScoredQuestion]:
        """
        Score and rank every question in the bank for a learner.

        Returns:
            ScoredQuestion list, highest priority first
        """
        with store_operation("get next questions"):
            progress_rows = await self.progress.list_by_learner(learner_id)
            recent = await self.attempts.list_recent_by_learner(
                learner_id, self.recent_attempt_window
            )
            questions = await self.questions.list_all()

        progress_by_topic = {p.topic: p for p in progress_rows}
        recent_ids = {a.question_id for a in recent}
        now = self._clock()

        scored = []
        for question in questions:
            progress = progress_by_topic.get(question.topic)
            scored.append(
                ScoredQuestion(
                    question=question,
                    priority=self.scorer.score(
                        question, progress, question.id in recent_ids, now
                    ),
                    mastery_level=progress.mastery_level if progress else 0.0,
                )
            )

        ranked = self.scorer.rank(scored)
        logger.debug(
            f"Ranked {len(ranked)} questions for learner {learner_id} "
            f"({len(recent_ids)} recently seen, {len(progress_by_topic)} topics with progress)"
        )
        return ranked

    async def get_next_questions(
        self, learner_id: str, count: int | None = None
    ) -> list[Question]:
        """
        Get the next questions a learner should practice.

        Args:
            learner_id: Learner identifier
            count: Number of questions to return (default_count when None)

        Returns:
            Up to ``count`` questions, highest priority first
        """
        if count is None:
            count = self.default_count
        ranked = await self.rank_questions(learner_id)
        return [s.question for s in ranked[: max(0, count)]]

    # ==================== Due lists ====================

    def review_interval_days(self, mastery_level: float) -> int:
        """Topic review threshold for a mastery level."""
        for minimum, days in self.REVIEW_THRESHOLDS:
            if mastery_level >= minimum:
                return days
        return self.DEFAULT_REVIEW_DAYS

    def is_topic_due(self, progress: TopicProgress, now: datetime) -> bool:
        return progress.days_since_practiced(now) >= self.review_interval_days(
            progress.mastery_level
        )

    async def get_questions_for_review(self, learner_id: str) -> list[Question]:
        """
        Get all questions belonging to topics that are due for review.

        Topics without progress are never due here; the ranked path surfaces
        them as new topics instead.
        """
        now = self._clock()
        with store_operation("get questions for review"):
            progress_rows = await self.progress.list_by_learner(learner_id)
            due_topics = [p.topic for p in progress_rows if self.is_topic_due(p, now)]

            seen: set[str] = set()
            due_questions: list[Question] = []
            for topic in due_topics:
                for question in await self.questions.list_by_topic(topic):
                    if question.id not in seen:
                        seen.add(question.id)
                        due_questions.append(question)

        logger.debug(
            f"Learner {learner_id}: {len(due_topics)} due topics, {len(due_questions)} questions"
        )
        return due_questions

    async def get_scheduled_reviews(
        self, learner_id: str, limit: int | None = None
    ) -> list[Question]:
        """
        Get questions whose SM-2 review date has arrived, most overdue first.

        Raises:
            ValueError: if the selector was built without a review store
        """
        if self.reviews is None:
            raise ValueError("QuestionSelector was constructed without a review store")

        today = self._clock().date()
        with store_operation("get scheduled reviews"):
            states = await self.reviews.list_due(learner_id, today)
            states = sorted(states, key=lambda s: -s.days_overdue(today))

            questions = []
            for state in states:
                if limit is not None and len(questions) >= limit:
                    break
                question = await self.questions.get(state.question_id)
                if question is None:
                    # Question deleted after it was scheduled
                    logger.debug(f"Skipping review of missing question {state.question_id}")
                    continue
                questions.append(question)
        return questions

    # ==================== Recommendations ====================

    @staticmethod
    def _recommendation_reason(progress: TopicProgress | None) -> str:
        if progress is None:
            return "New topic - start learning"
        if progress.mastery_level < 30:
            return "Low mastery - needs practice"
        if progress.mastery_level < 70:
            return "Moderate mastery - continue practicing"
        return "High mastery - maintain knowledge"

    async def get_learning_recommendations(
        self, learner_id: str, limit: int | None = None
    ) -> list[QuestionRecommendation]:
        """
        Per-question recommendations, ignoring the recent-repetition penalty.

        Returns:
            Top ``limit`` recommendations by priority
        """
        with store_operation("get learning recommendations"):
            progress_rows = await self.progress.list_by_learner(learner_id)
            questions = await self.questions.list_all()

        progress_by_topic = {p.topic: p for p in progress_rows}
        now = self._clock()

        recommendations = []
        for question in questions:
            progress = progress_by_topic.get(question.topic)
            recommendations.append(
                QuestionRecommendation(
                    question_id=question.id,
                    topic=question.topic,
                    priority=self.scorer.score(question, progress, False, now),
                    reason=self._recommendation_reason(progress),
                )
            )

        recommendations.sort(key=lambda r: -r.priority)
        return recommendations[: self.recommendation_limit if limit is None else limit]
