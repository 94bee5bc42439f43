"""
Learning: Store-backed engine services.

This package contains the orchestration over the store contracts:
- question_selector: ranked candidates, due lists, recommendations
- progress_tracker: topic mastery and per-question review state
- question_bank: validated question CRUD
- analytics: sessions, attempt recording, performance reports
"""

from learnloop.learning.analytics import (
    AnalyticsService,
    PerformanceAnalysis,
    TopicPerformance,
    TrendPoint,
)
from learnloop.learning.progress_tracker import ProgressTracker, TopicRecommendation
from learnloop.learning.question_bank import QuestionBank
from learnloop.learning.question_selector import QuestionRecommendation, QuestionSelector

__all__ = [
    # Selection
    "QuestionSelector",
    "QuestionRecommendation",
    # Progress
    "ProgressTracker",
    "TopicRecommendation",
    # Question bank
    "QuestionBank",
    # Analytics
    "AnalyticsService",
    "PerformanceAnalysis",
    "TopicPerformance",
    "TrendPoint",
]
