"""
Unit tests for QuestionBank.
"""

from datetime import timedelta

import pytest

from learnloop.core.errors import EngineError, ErrorKind, InvalidInputError
from learnloop.core.models import Difficulty

from conftest import NOW


class TestAddQuestion:
    @pytest.mark.asyncio
    async def test_add_from_dict(self, bank, question_store, sample_question):
        question = await bank.add_question(sample_question)

        assert question.difficulty is Difficulty.HARD
        assert question.created_at == NOW
        assert question_store.rows[question.id].prompt == sample_question["prompt"]

    @pytest.mark.asyncio
    async def test_difficulty_defaults_to_medium(self, bank):
        question = await bank.add_question({"topic": "sql", "prompt": "p", "answer": "a"})
        assert question.difficulty is Difficulty.MEDIUM

    @pytest.mark.asyncio
    async def test_invalid_payload(self, bank, question_store):
        with pytest.raises(InvalidInputError) as excinfo:
            await bank.add_question({"topic": "", "prompt": "p", "answer": "a"})

        assert excinfo.value.kind is ErrorKind.INVALID_INPUT
        assert question_store.rows == {}


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_newest_first(self, bank, question_store):
        question_store.add("old", "sql", created_at=NOW - timedelta(days=2))
        question_store.add("new", "sql", created_at=NOW)
        question_store.add("mid", "net", created_at=NOW - timedelta(days=1))

        assert [q.id for q in await bank.list_questions()] == ["new", "mid", "old"]
        assert [q.id for q in await bank.list_by_topic("sql")] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_list_by_difficulty(self, bank, question_store):
        question_store.add("e", "sql", Difficulty.EASY)
        question_store.add("h", "sql", Difficulty.HARD)

        assert [q.id for q in await bank.list_by_difficulty("hard")] == ["h"]
        with pytest.raises(InvalidInputError):
            await bank.list_by_difficulty("extreme")

    @pytest.mark.asyncio
    async def test_get_and_require(self, bank, question_store):
        question_store.add("q1", "sql")

        assert (await bank.get_question("q1")).id == "q1"
        assert await bank.get_question("missing") is None
        with pytest.raises(EngineError) as excinfo:
            await bank.require_question("missing")
        assert excinfo.value.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_count_by_topic(self, bank, question_store):
        question_store.add("q1", "sql")
        question_store.add("q2", "sql")
        question_store.add("q3", "net")

        assert await bank.count_by_topic() == {"net": 1, "sql": 2}

    @pytest.mark.asyncio
    async def test_random_questions(self, bank, question_store):
        for i in range(5):
            question_store.add(f"s{i}", "sql")
        question_store.add("n0", "net")

        sample = await bank.get_random_questions(3)
        assert len(sample) == 3
        assert len({q.id for q in sample}) == 3

        assert [q.id for q in await bank.get_random_questions(10, topic="net")] == ["n0"]
        assert await bank.get_random_questions(0) == []


class TestEdits:
    @pytest.mark.asyncio
    async def test_partial_update(self, bank, question_store, clock):
        question_store.add("q1", "sql")
        clock.advance(days=1)

        updated = await bank.update_question("q1", {"answer": "Better answer"})

        assert updated.answer == "Better answer"
        assert updated.topic == "sql"
        assert updated.updated_at == NOW + timedelta(days=1)
        assert question_store.rows["q1"].answer == "Better answer"

    @pytest.mark.asyncio
    async def test_update_missing(self, bank):
        with pytest.raises(EngineError) as excinfo:
            await bank.update_question("missing", {"answer": "x"})
        assert excinfo.value.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete(self, bank, question_store):
        question_store.add("q1", "sql")

        await bank.delete_question("q1")

        assert question_store.rows == {}
        with pytest.raises(EngineError) as excinfo:
            await bank.delete_question("q1")
        assert excinfo.value.kind is ErrorKind.NOT_FOUND
        assert excinfo.value.operation == "delete question"
