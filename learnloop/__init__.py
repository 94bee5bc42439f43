"""
learnloop - Adaptive spaced-repetition scheduling engine.

Packages:
- core: domain records, store contracts, mastery rules, errors
- study: priority scoring and SM-2 interval math
- learning: selector, progress tracker, question bank, analytics
- db: SQLAlchemy async store adapters
"""

__version__ = "0.1.0"
