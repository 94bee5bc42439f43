"""
Priority Scorer for question selection.

Scores a single question 0-100 for how urgently the learner should see it:

    50 base
    + mastery gap      (100 - mastery) * 0.5, or +25 for a new topic
    + recency          min(days_since_practiced * 2, 20)
    + difficulty       +5 easy / +10 medium / +15 hard
    - repetition       -30 when seen in the learner's recent attempts
    + success rate     +20 below 50%, -10 above 80%

The adjustments are applied in that order and the sum is clamped.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from learnloop.core.mastery import clamp
from learnloop.core.models import Difficulty, Question, TopicProgress


@dataclass
class ScoredQuestion:
    """A question with its ranking keys."""

    question: Question
    priority: float
    mastery_level: float  # 0 for topics with no progress


class PriorityScorer:
    """
    Stateless question scorer.

    Constants are class attributes so variants can subclass and override.
    """

    BASE_PRIORITY = 50.0
    NEW_TOPIC_BONUS = 25.0
    MASTERY_GAP_WEIGHT = 0.5

    RECENCY_POINTS_PER_DAY = 2
    RECENCY_CAP = 20

    DIFFICULTY_BONUS = {
        Difficulty.EASY: 5.0,
        Difficulty.MEDIUM: 10.0,
        Difficulty.HARD: 15.0,
    }

    RECENT_REPEAT_PENALTY = 30.0

    LOW_SUCCESS_RATE = 0.5
    LOW_SUCCESS_BONUS = 20.0
    HIGH_SUCCESS_RATE = 0.8
    HIGH_SUCCESS_PENALTY = 10.0

    def recency_bonus(self, progress: TopicProgress | None, now: datetime) -> float:
        """Bonus for time since the topic was last practiced (0 without progress)."""
        if progress is None:
            return 0.0
        days = progress.days_since_practiced(now)
        return float(min(days * self.RECENCY_POINTS_PER_DAY, self.RECENCY_CAP))

    def score(
        self,
        question: Question,
        progress: TopicProgress | None,
        was_recently_attempted: bool,
        now: datetime,
    ) -> float:
        """
        Score one question.

        Args:
            question: Candidate question
            progress: Learner's progress in the question's topic, if any
            was_recently_attempted: Question is in the learner's recent attempts
            now: Reference time for recency

        Returns:
            Priority 0-100
        """
        priority = self.BASE_PRIORITY

        # 1. Mastery gap
        if progress is not None:
            priority += (100 - progress.mastery_level) * self.MASTERY_GAP_WEIGHT
        else:
            priority += self.NEW_TOPIC_BONUS

        # 2. Time since last practice
        priority += self.recency_bonus(progress, now)

        # 3. Difficulty
        priority += self.DIFFICULTY_BONUS.get(Difficulty(question.difficulty), 0.0)

        # 4. Avoid immediate repetition
        if was_recently_attempted:
            priority -= self.RECENT_REPEAT_PENALTY

        # 5. Success rate
        if progress is not None and progress.total_attempts > 0:
            success_rate = progress.correct_attempts / progress.total_attempts
            if success_rate < self.LOW_SUCCESS_RATE:
                priority += self.LOW_SUCCESS_BONUS
            elif success_rate > self.HIGH_SUCCESS_RATE:
                priority -= self.HIGH_SUCCESS_PENALTY

        return clamp(priority, 0.0, 100.0)

    @staticmethod
    def rank(scored: Iterable[ScoredQuestion]) -> list[ScoredQuestion]:
        """
        Order by priority descending, then mastery ascending.

        The sort is stable, so fully tied candidates keep their input order.
        """
        return sorted(scored, key=lambda s: (-s.priority, s.mastery_level))


def score_priority(
    question: Question,
    progress: TopicProgress | None,
    was_recently_attempted: bool,
    now: datetime,
) -> float:
    """Score with the default PriorityScorer."""
    return PriorityScorer().score(question, progress, was_recently_attempted, now)
