"""
Study Module - Pure scheduling math.

Provides:
- Priority scoring and ranking of candidate questions
- SM-2 interval calculation for per-question review
"""

from learnloop.study.priority_scorer import PriorityScorer, ScoredQuestion, score_priority
from learnloop.study.scheduler import (
    IntervalUpdate,
    SM2Config,
    SM2Scheduler,
    grade_from_response,
    next_interval,
    performance_from_response,
)

__all__ = [
    "PriorityScorer",
    "ScoredQuestion",
    "score_priority",
    "IntervalUpdate",
    "SM2Config",
    "SM2Scheduler",
    "grade_from_response",
    "next_interval",
    "performance_from_response",
]
