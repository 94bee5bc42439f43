"""
Database package: SQLAlchemy tables, async engine handle and store adapters.
"""

from dataclasses import dataclass

from learnloop.db.database import Database
from learnloop.db.models import (
    Base,
    QuestionAttemptRow,
    QuestionRow,
    QuizSessionRow,
    ReviewStateRow,
    TopicProgressRow,
)
from learnloop.db.stores import (
    SqlAttemptStore,
    SqlQuestionStore,
    SqlReviewStateStore,
    SqlSessionStore,
    SqlTopicProgressStore,
)


@dataclass
class SqlStores:
    """One adapter per store contract, sharing a Database."""

    questions: SqlQuestionStore
    attempts: SqlAttemptStore
    progress: SqlTopicProgressStore
    sessions: SqlSessionStore
    reviews: SqlReviewStateStore

    @classmethod
    def for_database(cls, database: Database) -> "SqlStores":
        return cls(
            questions=SqlQuestionStore(database),
            attempts=SqlAttemptStore(database),
            progress=SqlTopicProgressStore(database),
            sessions=SqlSessionStore(database),
            reviews=SqlReviewStateStore(database),
        )


__all__ = [
    "Database",
    "SqlStores",
    # Tables
    "Base",
    "QuestionRow",
    "QuizSessionRow",
    "QuestionAttemptRow",
    "TopicProgressRow",
    "ReviewStateRow",
    # Adapters
    "SqlQuestionStore",
    "SqlAttemptStore",
    "SqlTopicProgressStore",
    "SqlSessionStore",
    "SqlReviewStateStore",
]
