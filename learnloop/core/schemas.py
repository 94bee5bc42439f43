"""Pydantic drafts for question-bank writes."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from learnloop.core.models import Difficulty


class QuestionCreate(BaseModel):
    """Fields required to add a question to the bank."""

    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    difficulty: Difficulty = Difficulty.MEDIUM


class QuestionUpdate(BaseModel):
    """Partial edit of an existing question. Unset fields are left alone."""

    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str | None = Field(default=None, min_length=1)
    prompt: str | None = Field(default=None, min_length=1)
    answer: str | None = Field(default=None, min_length=1)
    difficulty: Difficulty | None = None

    @field_validator("topic", "prompt", "answer", "difficulty")
    @classmethod
    def _reject_explicit_null(cls, value):
        if value is None:
            raise ValueError("field may be omitted but not set to null")
        return value

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)
