"""
Composition root.

Wires settings, logging, the database and the SQL store adapters into the
engine services. Nothing here is a global: callers own the returned
LearningEngine and must ``await engine.close()`` when done.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from config import Settings, get_settings
from learnloop.core.log_config import setup_logging
from learnloop.db import Database, SqlStores
from learnloop.learning.analytics import AnalyticsService
from learnloop.learning.progress_tracker import ProgressTracker
from learnloop.learning.question_bank import QuestionBank
from learnloop.learning.question_selector import QuestionSelector


@dataclass
class LearningEngine:
    """The engine services bound to one database."""

    database: Database
    stores: SqlStores
    selector: QuestionSelector
    tracker: ProgressTracker
    bank: QuestionBank
    analytics: AnalyticsService

    async def close(self) -> None:
        await self.database.dispose()


async def build_engine(
    settings: Settings | None = None,
    database: Database | None = None,
    configure_logging: bool = True,
    create_tables: bool = False,
) -> LearningEngine:
    """
    Build the engine services from settings.

    Args:
        settings: Settings to use (get_settings() when None)
        database: Existing Database to bind to (built from settings when None)
        configure_logging: Install the loguru sinks from settings
        create_tables: Create missing tables before returning

    Returns:
        LearningEngine
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings)

    database = database or Database.from_settings(settings)
    if create_tables:
        await database.init_db()

    stores = SqlStores.for_database(database)
    tracker = ProgressTracker.from_settings(
        settings, stores.progress, stores.questions, stores.reviews
    )
    engine = LearningEngine(
        database=database,
        stores=stores,
        selector=QuestionSelector.from_settings(
            settings, stores.questions, stores.attempts, stores.progress, stores.reviews
        ),
        tracker=tracker,
        bank=QuestionBank(stores.questions),
        analytics=AnalyticsService(
            stores.questions, stores.attempts, stores.sessions, stores.progress, tracker
        ),
    )
    logger.info(f"Learning engine ready on {database.engine.url.render_as_string(hide_password=True)}")
    return engine
