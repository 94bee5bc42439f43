"""
Unit tests for question-bank drafts and settings.
"""

import pytest
from pydantic import ValidationError

from config import Settings
from learnloop.core.models import Difficulty
from learnloop.core.schemas import QuestionCreate, QuestionUpdate


class TestQuestionCreate:
    def test_defaults_and_stripping(self):
        draft = QuestionCreate(topic="  sql ", prompt="What is a JOIN?", answer="A combination")
        assert draft.topic == "sql"
        assert draft.difficulty is Difficulty.MEDIUM

    def test_difficulty_from_string(self):
        draft = QuestionCreate.model_validate(
            {"topic": "sql", "prompt": "p", "answer": "a", "difficulty": "hard"}
        )
        assert draft.difficulty is Difficulty.HARD

    @pytest.mark.parametrize(
        "payload",
        [
            {"topic": "", "prompt": "p", "answer": "a"},
            {"topic": "t", "answer": "a"},
            {"topic": "t", "prompt": "p", "answer": "a", "difficulty": "extreme"},
        ],
    )
    def test_invalid(self, payload):
        with pytest.raises(ValidationError):
            QuestionCreate.model_validate(payload)


class TestQuestionUpdate:
    def test_changes_only_include_set_fields(self):
        assert QuestionUpdate(answer="new").changes() == {"answer": "new"}

    def test_explicit_null_rejected(self):
        with pytest.raises(ValidationError):
            QuestionUpdate.model_validate({"topic": None})
        with pytest.raises(ValidationError):
            QuestionUpdate.model_validate({"difficulty": None})


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        settings = Settings(_env_file=None)
        assert settings.recent_attempt_window == 20
        assert settings.default_question_count == 10
        assert settings.progress_write_attempts == 3
        assert settings.sm2_initial_ease == 2.5

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("RECENT_ATTEMPT_WINDOW", "5")
        assert Settings(_env_file=None).recent_attempt_window == 5

    def test_rejects_invalid_values(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, sm2_initial_ease=1.0)
