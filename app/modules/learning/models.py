"""Pydantic models for explanation cards, quizzes and learning sessions.

These are the shapes the model is asked to produce and the shapes the API
returns. Model output is never trusted directly; it goes through
``app.modules.learning.normalizer`` which only ever builds these models from
coerced values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ContentAction(str, Enum):
    EXPLANATION = "explanation"
    CLARIFICATION = "clarification"
    QUIZ = "quiz"
    QUIZ_FEEDBACK = "quiz_feedback"


class ContentRequest(BaseModel):
    """One generation request; built per call and never mutated."""

    model_config = ConfigDict(frozen=True)

    action: ContentAction
    topic: str
    confusion: Optional[str] = None
    num_questions: int = 3
    correct: Optional[int] = None
    total: Optional[int] = None

    def payload(self) -> dict[str, Any]:
        """Payload in the shape the proxy endpoint expects."""
        data: dict[str, Any] = {"topic": self.topic}
        if self.action == ContentAction.CLARIFICATION:
            data["confusion"] = self.confusion or ""
        elif self.action == ContentAction.QUIZ:
            data["numQuestions"] = self.num_questions
        elif self.action == ContentAction.QUIZ_FEEDBACK:
            data["correct"] = self.correct or 0
            data["total"] = self.total or 0
        return data


class Card(BaseModel):
    """A titled explanation card; content is markdown."""

    title: str
    content: str


class ExplanationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    clean_topic: str = Field(alias="cleanTopic")
    cards: list[Card] = Field(default_factory=list)


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"


class QuizQuestion(BaseModel):
    """A single quiz question whose answer is always one of its options."""

    model_config = ConfigDict(populate_by_name=True)

    question: str
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: list[str] = Field(default_factory=list)
    correct_answer: str = Field(alias="correctAnswer")
    explanation: str = ""

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> "QuizQuestion":
        if self.correct_answer not in self.options:
            raise ValueError("correctAnswer must be one of options")
        return self


class QuizFeedback(BaseModel):
    feedback: str


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
    APPENDING_CLARIFICATION = "appending_clarification"


class QuizStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    READY = "ready"
    UNAVAILABLE = "unavailable"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _short_id() -> str:
    # 8-char slice from uuid4
    return uuid4().hex[:8]


@dataclass
class LearningSession:
    topic: str
    identity: Optional[str] = None
    id: str = field(default_factory=_short_id)
    title: Optional[str] = None
    cards: list[Card] = field(default_factory=list)
    state: SessionState = SessionState.IDLE
    error: Optional[str] = None
    from_cache: bool = False
    quiz: list[QuizQuestion] = field(default_factory=list)
    quiz_status: QuizStatus = QuizStatus.NONE
    created_at: datetime = field(default_factory=_now_utc)
    last_activity: datetime = field(default_factory=_now_utc)

    @property
    def is_guest(self) -> bool:
        return self.identity is None

    def touch(self) -> None:
        self.last_activity = _now_utc()
