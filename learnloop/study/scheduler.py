"""
SM-2 Spaced Repetition Scheduler.

Implements the SuperMemo 2 interval update on a 0-1 performance scale.
performance * 5 maps onto the classic 0-5 quality grade:

0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall

A performance of 0.6 (grade 3) or better counts as a pass.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta

from learnloop.core.mastery import clamp
from learnloop.core.models import ReviewState, utcnow

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review
    pass_threshold: float = 0.6


@dataclass(frozen=True)
class IntervalUpdate:
    """Result of one interval calculation."""

    interval: int
    ease_factor: float
    repetitions: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def next_interval(
    current_interval_days: int,
    repetitions: int,
    ease_factor: float,
    performance: float,
    config: SM2Config | None = None,
) -> IntervalUpdate:
    """
    Calculate the next review interval.

    Pass (performance >= 0.6):
        repetitions 0 -> 1 day, repetitions 1 -> 6 days,
        otherwise round(current_interval * ease_factor); repetitions + 1
    Fail:
        repetitions reset to 0, interval reset to 1 day

    The ease factor is recomputed on every call, pass or fail:
        EF' = max(1.3, EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)))  with q = performance * 5

    The interval uses the ease factor passed in, not the updated one.

    Args:
        current_interval_days: Interval that just elapsed
        repetitions: Consecutive passes so far
        ease_factor: Current ease factor
        performance: Performance 0-1 (clamped)

    Returns:
        IntervalUpdate with new interval, ease factor and repetitions
    """
    config = config or SM2Config()
    sample = clamp(performance, 0.0, 1.0)

    if sample >= config.pass_threshold:
        if repetitions == 0:
            interval = config.first_interval
        elif repetitions == 1:
            interval = config.second_interval
        else:
            interval = _round_half_up(current_interval_days * ease_factor)
        new_repetitions = repetitions + 1
    else:
        interval = config.first_interval
        new_repetitions = 0

    # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    grade_gap = 5 - sample * 5
    new_ease = max(
        config.minimum_easiness,
        ease_factor + (0.1 - grade_gap * (0.08 + grade_gap * 0.02)),
    )

    return IntervalUpdate(interval=interval, ease_factor=new_ease, repetitions=new_repetitions)


def grade_from_response(
    is_correct: bool,
    response_ms: int | None,
    expected_ms: int = 10000,
) -> int:
    """
    Convert a response to an SM-2 grade.

    A missing response time counts as a hesitant correct answer (4) or a
    blackout (0).

    Args:
        is_correct: Whether the answer was correct
        response_ms: Time taken to respond
        expected_ms: Expected response time

    Returns:
        Grade 0-5
    """
    if response_ms is None:
        return 4 if is_correct else 0

    if not is_correct:
        # Incorrect responses: 0-2
        if response_ms < expected_ms * 0.5:
            return 2  # Quick wrong = almost knew it
        elif response_ms < expected_ms:
            return 1  # Wrong but remembered when shown
        else:
            return 0  # Complete blackout

    # Correct responses: 3-5
    if response_ms < expected_ms * 0.5:
        return 5  # Quick and correct = perfect recall
    elif response_ms < expected_ms:
        return 4  # Correct with some hesitation
    else:
        return 3  # Correct but struggled


def performance_from_response(
    is_correct: bool,
    response_ms: int | None,
    expected_ms: int = 10000,
) -> float:
    """Map an attempt onto the 0-1 performance scale via its SM-2 grade."""
    return grade_from_response(is_correct, response_ms, expected_ms) / 5


class SM2Scheduler:
    """
    Applies the SM-2 update to persisted per-question review state.

    Each state has:
    - Easiness Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive correct recalls
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def initial_state(self, learner_id: str, question_id: str) -> ReviewState:
        return ReviewState(
            learner_id=learner_id,
            question_id=question_id,
            ease_factor=self.config.initial_easiness,
            interval_days=self.config.first_interval,
            repetitions=0,
        )

    def advance(
        self,
        state: ReviewState,
        performance: float,
        reviewed_at: datetime | None = None,
    ) -> ReviewState:
        """
        Return the state after one review.

        The returned copy has its version bumped; the input is not modified.
        """
        reviewed_at = reviewed_at or utcnow()
        update = next_interval(
            state.interval_days,
            state.repetitions,
            state.ease_factor,
            performance,
            self.config,
        )
        today: date = reviewed_at.date()
        return replace(
            state,
            ease_factor=update.ease_factor,
            interval_days=update.interval,
            repetitions=update.repetitions,
            next_review=today + timedelta(days=update.interval),
            last_reviewed=reviewed_at,
            version=state.version + 1,
        )
