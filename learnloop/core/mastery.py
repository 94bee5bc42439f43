"""
Core Mastery Module.

Two update rules are supported and deliberately kept separate:

- update_mastery: continuous performance sample (0-1) nudges the current
  level, with a learning rate that shrinks near the ceiling and a stability
  factor that grows with evidence.
- accuracy_mastery: level derived from cumulative correct/total counters,
  with a consistency bonus. Used by the boolean attempt path.

Both return a level on the 0-100 scale.
"""

from __future__ import annotations

from enum import Enum

MASTERY_MIN = 0.0
MASTERY_MAX = 100.0


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def update_mastery(current_mastery: float, performance: float, total_attempts: int) -> float:
    """
    Update a mastery level from one performance sample.

    Formula:
        learning_rate = 0.1 * (1 - current / 100)
        performance > 0.5:  change =  learning_rate * (performance - 0.5) * 100
        otherwise:          change = -learning_rate * (0.5 - performance) * 50
        change *= 1 + min(1, total_attempts / 10)

    Incorrect-leaning samples move the level half as far as correct ones.
    Out-of-range inputs are clamped rather than rejected.

    Args:
        current_mastery: Current level (0-100)
        performance: Performance sample (0-1), 0.5 is neutral
        total_attempts: Attempts recorded so far for the topic

    Returns:
        New mastery level (0-100)
    """
    current = clamp(current_mastery, MASTERY_MIN, MASTERY_MAX)
    sample = clamp(performance, 0.0, 1.0)
    attempts = max(0, total_attempts)

    learning_rate = 0.1 * (1 - current / 100)

    if sample > 0.5:
        change = learning_rate * (sample - 0.5) * 100
    else:
        change = -learning_rate * (0.5 - sample) * 50

    stability_factor = min(1.0, attempts / 10)
    change *= 1 + stability_factor

    return clamp(current + change, MASTERY_MIN, MASTERY_MAX)


def accuracy_mastery(correct_attempts: int, total_attempts: int) -> float:
    """
    Mastery level from cumulative accuracy.

    accuracy * 100, plus min(10, total * 0.5) once at least 5 attempts have
    been made at 80%+ accuracy.

    Example:
        8 of 10 correct -> 80 + min(10, 5) = 85
    """
    if total_attempts <= 0:
        return MASTERY_MIN

    accuracy = correct_attempts / total_attempts
    level = accuracy * 100

    if total_attempts >= 5 and accuracy >= 0.8:
        level += min(10.0, total_attempts * 0.5)

    return clamp(level, MASTERY_MIN, MASTERY_MAX)


class MasteryTier(str, Enum):
    """
    Topic-level mastery bands used for recommendations.

    NEW means no progress has been recorded for the topic.
    """

    NEW = "new"
    CRITICAL = "critical"  # < 30
    DEVELOPING = "developing"  # 30-59
    PROFICIENT = "proficient"  # 60-79
    MAINTENANCE = "maintenance"  # 80+

    @classmethod
    def from_level(cls, mastery_level: float | None) -> MasteryTier:
        if mastery_level is None:
            return cls.NEW
        if mastery_level < 30:
            return cls.CRITICAL
        if mastery_level < 60:
            return cls.DEVELOPING
        if mastery_level < 80:
            return cls.PROFICIENT
        return cls.MAINTENANCE

    @property
    def base_priority(self) -> int:
        return {
            MasteryTier.NEW: 80,
            MasteryTier.CRITICAL: 90,
            MasteryTier.DEVELOPING: 70,
            MasteryTier.PROFICIENT: 40,
            MasteryTier.MAINTENANCE: 20,
        }[self]

    @property
    def reason(self) -> str:
        return {
            MasteryTier.NEW: "New topic - start learning",
            MasteryTier.CRITICAL: "Low mastery - needs immediate attention",
            MasteryTier.DEVELOPING: "Moderate mastery - continue practicing",
            MasteryTier.PROFICIENT: "Good mastery - occasional review",
            MasteryTier.MAINTENANCE: "High mastery - maintenance only",
        }[self]
