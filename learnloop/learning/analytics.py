"""
Session and Performance Analytics.

Owns the attempt write path (attempt -> session counters -> topic progress ->
review schedule) and the learner performance report.

The attempt and its session counters are written in one store call. Topic
progress and review state follow with compare-and-swap (see ProgressTracker).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from loguru import logger

from learnloop.core.errors import EngineError, ErrorKind, InvalidInputError, store_operation
from learnloop.core.models import Attempt, QuizSession, RecentAttempt, new_id, utcnow
from learnloop.core.ports import AttemptStore, QuestionStore, SessionStore, TopicProgressStore
from learnloop.learning.progress_tracker import ProgressTracker


@dataclass
class TopicPerformance:
    """Per-topic slice of a performance report."""

    topic: str
    accuracy: float  # percent
    total_attempts: int
    correct_attempts: int
    average_response_time: float  # ms, 0 when unknown
    mastery_level: float


@dataclass
class TrendPoint:
    """Accuracy for one calendar day (UTC)."""

    date: str
    accuracy: float
    total_attempts: int


@dataclass
class PerformanceAnalysis:
    """Learner performance report."""

    overall_accuracy: float = 0.0
    total_attempts: int = 0
    correct_attempts: int = 0
    average_response_time: float = 0.0
    topic_breakdown: list[TopicPerformance] = field(default_factory=list)
    weak_areas: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    improvement_trends: list[TrendPoint] = field(default_factory=list)


def _average(values: list[int]) -> float:
    return sum(values) / len(values) if values else 0.0


class AnalyticsService:
    """
    Quiz sessions, attempt recording and performance analysis.

    Thresholds:
    - Weak area: topic accuracy below 70%
    - Slow topic: average response time above 10 seconds
    - Trend window: last 7 days
    """

    WEAK_AREA_ACCURACY = 70.0
    SLOW_RESPONSE_MS = 10000
    TREND_DAYS = 7

    def __init__(
        self,
        question_store: QuestionStore,
        attempt_store: AttemptStore,
        session_store: SessionStore,
        progress_store: TopicProgressStore,
        tracker: ProgressTracker,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.questions = question_store
        self.attempts = attempt_store
        self.sessions = session_store
        self.progress = progress_store
        self.tracker = tracker
        self._clock = clock

    # ==================== Sessions ====================

    async def start_session(self, learner_id: str | None = None) -> QuizSession:
        session = QuizSession(id=new_id(), learner_id=learner_id, started_at=self._clock())
        with store_operation("create quiz session"):
            created = await self.sessions.create(session)
        logger.info(f"Started session {created.id} for learner {learner_id or 'anonymous'}")
        return created

    async def _require_session(self, session_id: str, operation: str) -> QuizSession:
        with store_operation(operation):
            session = await self.sessions.get(session_id)
        if session is None:
            raise EngineError(
                operation, ErrorKind.NOT_FOUND, detail=f"quiz session {session_id} not found"
            )
        return session

    async def complete_session(self, session_id: str) -> QuizSession:
        """Close a session by stamping its completion time."""
        session = await self._require_session(session_id, "complete quiz session")
        with store_operation("complete quiz session"):
            closed = await self.sessions.update(replace(session, completed_at=self._clock()))
        logger.info(
            f"Completed session {session_id}: "
            f"{closed.correct_answers}/{closed.total_questions} correct"
        )
        return closed

    async def get_session_attempts(self, session_id: str) -> list[Attempt]:
        with store_operation("list session attempts"):
            return await self.attempts.list_by_session(session_id)

    # ==================== Attempt recording ====================

    async def record_answer(
        self,
        session_id: str,
        question_id: str,
        is_correct: bool,
        response_time_ms: int | None = None,
        attempt_id: str | None = None,
    ) -> Attempt:
        """
        Record one answer and propagate it.

        Steps:
        1. Check the session and question exist
        2. Append the attempt and bump the session counters (one transaction)
        3. Update topic progress and the question's review schedule
           (only for sessions that belong to a learner)

        If step 3 fails the attempt stays recorded and the error is raised.
        Calling again with the same ``attempt_id`` does not append a second
        attempt; it only re-runs step 3.

        Args:
            session_id: Session the answer belongs to
            question_id: Answered question
            is_correct: Whether the answer was correct
            response_time_ms: Time taken to answer, if measured
            attempt_id: Caller-chosen id that makes retries safe (generated when None)

        Returns:
            The stored Attempt
        """
        operation = "record question attempt"
        session = await self._require_session(session_id, operation)
        with store_operation(operation):
            question = await self.questions.get(question_id)
        if question is None:
            raise EngineError(
                operation, ErrorKind.NOT_FOUND, detail=f"question {question_id} not found"
            )

        stored = await self._append_attempt(
            operation, attempt_id, session_id, question_id, is_correct, response_time_ms
        )

        if session.learner_id is not None:
            await self.tracker.record_attempt_and_update_progress(
                session.learner_id, question.topic, is_correct
            )
            if self.tracker.reviews is not None:
                await self.tracker.record_review(
                    session.learner_id, question_id, is_correct, response_time_ms
                )

        return stored

    async def _append_attempt(
        self,
        operation: str,
        attempt_id: str | None,
        session_id: str,
        question_id: str,
        is_correct: bool,
        response_time_ms: int | None,
    ) -> Attempt:
        if attempt_id is not None:
            with store_operation(operation):
                existing = await self.attempts.get(attempt_id)
            if existing is not None:
                if (existing.session_id, existing.question_id, existing.is_correct) != (
                    session_id,
                    question_id,
                    is_correct,
                ):
                    raise InvalidInputError(
                        operation, f"attempt {attempt_id} was already recorded with other values"
                    )
                logger.debug(f"Attempt {attempt_id} already recorded, replaying propagation")
                return existing

        attempt = Attempt(
            id=attempt_id or new_id(),
            session_id=session_id,
            question_id=question_id,
            is_correct=is_correct,
            response_time_ms=response_time_ms,
            attempted_at=self._clock(),
        )
        with store_operation(operation):
            return await self.attempts.create(attempt)

    # ==================== Performance analysis ====================

    async def get_performance_analysis(self, learner_id: str | None = None) -> PerformanceAnalysis:
        """
        Build a performance report from the full attempt history.

        With no learner, every attempt is analysed (anonymous sessions
        included) and topic mastery is reported as 0. Returns an empty
        report when there are no attempts.
        """
        since = self._clock() - timedelta(days=self.TREND_DAYS)
        with store_operation("get performance analysis"):
            if learner_id is None:
                history = await self.attempts.list_all()
                if not history:
                    return PerformanceAnalysis()
                progress_rows = []
                recent = await self.attempts.list_all(since=since)
            else:
                history = await self.attempts.list_by_learner(learner_id)
                if not history:
                    return PerformanceAnalysis()
                progress_rows = await self.progress.list_by_learner(learner_id)
                recent = await self.attempts.list_by_learner(learner_id, since=since)

        total = len(history)
        correct = sum(1 for a in history if a.attempt.is_correct)
        overall_accuracy = correct / total * 100
        latencies = [
            a.attempt.response_time_ms for a in history if a.attempt.response_time_ms is not None
        ]

        breakdown = self._topic_breakdown(history, {p.topic: p.mastery_level for p in progress_rows})
        weak_areas = [t.topic for t in breakdown if t.accuracy < self.WEAK_AREA_ACCURACY]

        return PerformanceAnalysis(
            overall_accuracy=overall_accuracy,
            total_attempts=total,
            correct_attempts=correct,
            average_response_time=_average(latencies),
            topic_breakdown=breakdown,
            weak_areas=weak_areas,
            recommendations=self._recommendations(breakdown, overall_accuracy),
            improvement_trends=self._trends(recent),
        )

    def _topic_breakdown(
        self, history: list[RecentAttempt], mastery_by_topic: dict[str, float]
    ) -> list[TopicPerformance]:
        totals: dict[str, int] = defaultdict(int)
        corrects: dict[str, int] = defaultdict(int)
        latencies: dict[str, list[int]] = defaultdict(list)

        for item in history:
            totals[item.topic] += 1
            if item.attempt.is_correct:
                corrects[item.topic] += 1
            if item.attempt.response_time_ms is not None:
                latencies[item.topic].append(item.attempt.response_time_ms)

        return [
            TopicPerformance(
                topic=topic,
                accuracy=corrects[topic] / count * 100,
                total_attempts=count,
                correct_attempts=corrects[topic],
                average_response_time=_average(latencies[topic]),
                mastery_level=mastery_by_topic.get(topic, 0.0),
            )
            for topic, count in totals.items()
        ]

    def _recommendations(
        self, breakdown: list[TopicPerformance], overall_accuracy: float
    ) -> list[str]:
        recommendations = []

        if overall_accuracy < 60:
            recommendations.append(
                "Focus on reviewing fundamental concepts before attempting more questions"
            )
        elif overall_accuracy < 80:
            recommendations.append("Good progress! Continue practicing to improve accuracy")
        else:
            recommendations.append(
                "Excellent performance! Consider tackling more challenging topics"
            )

        weak = [t.topic for t in breakdown if t.accuracy < self.WEAK_AREA_ACCURACY]
        if weak:
            recommendations.append(f"Focus on improving: {', '.join(weak)}")

        slow = [t.topic for t in breakdown if t.average_response_time > self.SLOW_RESPONSE_MS]
        if slow:
            recommendations.append(f"Work on speed for: {', '.join(slow)}")

        return recommendations

    @staticmethod
    def _trends(recent: list[RecentAttempt]) -> list[TrendPoint]:
        totals: dict[str, int] = {}
        corrects: dict[str, int] = defaultdict(int)
        for item in recent:
            day = item.attempt.attempted_at.date().isoformat()
            totals[day] = totals.get(day, 0) + 1
            if item.attempt.is_correct:
                corrects[day] += 1

        return [
            TrendPoint(date=day, accuracy=corrects[day] / count * 100, total_attempts=count)
            for day, count in totals.items()
        ]
