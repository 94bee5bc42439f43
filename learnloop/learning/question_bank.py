"""
Question Bank Service.

Validated CRUD over the question store. Writes go through pydantic drafts;
lookups of a specific id that must exist raise an EngineError of kind
NOT_FOUND.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError

from learnloop.core.errors import EngineError, ErrorKind, InvalidInputError, store_operation
from learnloop.core.models import Difficulty, Question, new_id, utcnow
from learnloop.core.ports import QuestionStore
from learnloop.core.schemas import QuestionCreate, QuestionUpdate


class QuestionBank:
    """Question bank operations shared by every learner."""

    def __init__(
        self,
        question_store: QuestionStore,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ):
        self.store = question_store
        self._clock = clock
        self._rng = rng or random.Random()

    async def list_questions(self) -> list[Question]:
        """All questions, newest first."""
        with store_operation("fetch questions"):
            questions = await self.store.list_all()
        return sorted(questions, key=lambda q: q.created_at, reverse=True)

    async def get_question(self, question_id: str) -> Question | None:
        with store_operation("fetch question"):
            return await self.store.get(question_id)

    async def require_question(self, question_id: str) -> Question:
        question = await self.get_question(question_id)
        if question is None:
            raise EngineError(
                "fetch question", ErrorKind.NOT_FOUND, detail=f"question {question_id} not found"
            )
        return question

    async def list_by_topic(self, topic: str) -> list[Question]:
        with store_operation("fetch questions by topic"):
            questions = await self.store.list_by_topic(topic)
        return sorted(questions, key=lambda q: q.created_at, reverse=True)

    async def list_by_difficulty(self, difficulty: Difficulty | str) -> list[Question]:
        try:
            level = Difficulty(difficulty)
        except ValueError as exc:
            raise InvalidInputError(
                "fetch questions by difficulty", f"unknown difficulty {difficulty!r}", exc
            ) from exc
        with store_operation("fetch questions by difficulty"):
            questions = await self.store.list_by_difficulty(level)
        return sorted(questions, key=lambda q: q.created_at, reverse=True)

    async def add_question(self, data: QuestionCreate | dict[str, Any]) -> Question:
        """
        Validate and store a new question.

        Args:
            data: QuestionCreate or a plain dict with topic/prompt/answer[/difficulty]

        Returns:
            The stored Question
        """
        try:
            draft = data if isinstance(data, QuestionCreate) else QuestionCreate.model_validate(data)
        except ValidationError as exc:
            raise InvalidInputError("create question", str(exc), exc) from exc

        now = self._clock()
        question = Question(
            id=new_id(),
            topic=draft.topic,
            prompt=draft.prompt,
            answer=draft.answer,
            difficulty=draft.difficulty,
            created_at=now,
            updated_at=now,
        )
        with store_operation("create question"):
            stored = await self.store.create(question)
        logger.info(f"Added question {stored.id} to topic '{stored.topic}'")
        return stored

    async def update_question(
        self, question_id: str, data: QuestionUpdate | dict[str, Any]
    ) -> Question:
        try:
            draft = data if isinstance(data, QuestionUpdate) else QuestionUpdate.model_validate(data)
        except ValidationError as exc:
            raise InvalidInputError("update question", str(exc), exc) from exc

        existing = await self.require_question(question_id)
        updated = replace(existing, **draft.changes(), updated_at=self._clock())
        with store_operation("update question"):
            return await self.store.update(updated)

    async def delete_question(self, question_id: str) -> None:
        with store_operation("delete question"):
            await self.store.delete(question_id)
        logger.info(f"Deleted question {question_id}")

    async def get_random_questions(self, count: int, topic: str | None = None) -> list[Question]:
        """Random sample of up to ``count`` questions, optionally within one topic."""
        with store_operation("fetch random questions"):
            if topic is None:
                pool = await self.store.list_all()
            else:
                pool = await self.store.list_by_topic(topic)
        return self._rng.sample(pool, min(max(0, count), len(pool)))

    async def count_by_topic(self) -> dict[str, int]:
        with store_operation("count questions by topic"):
            return await self.store.count_by_topic()
