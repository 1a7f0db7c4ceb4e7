from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from app.modules.learning.models import (
    Card,
    LearningSession,
    QuizQuestion,
    QuizStatus,
    SessionState,
)


class CreateSessionRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500, description="Topic to explain")
    quiz_mode: bool = Field(default=False, description="Also generate a quiz")
    num_questions: int = Field(default=3, ge=1, le=20)


class ClarificationRequest(BaseModel):
    confusion: str = Field(..., min_length=1, max_length=2000)


class QuizRequest(BaseModel):
    num_questions: int = Field(default=3, ge=1, le=20)


class QuizFeedbackRequest(BaseModel):
    correct: int = Field(..., ge=0)
    total: int = Field(..., ge=1)


class SessionView(BaseModel):
    id: str
    topic: str
    title: Optional[str] = None
    state: SessionState
    error: Optional[str] = None
    from_cache: bool = False
    cards: list[Card] = Field(default_factory=list)
    quiz_status: QuizStatus = QuizStatus.NONE
    quiz: list[QuizQuestion] = Field(default_factory=list)

    @classmethod
    def from_session(cls, s: LearningSession) -> "SessionView":
        return cls(
            id=s.id,
            topic=s.topic,
            title=s.title,
            state=s.state,
            error=s.error,
            from_cache=s.from_cache,
            cards=list(s.cards),
            quiz_status=s.quiz_status,
            quiz=list(s.quiz),
        )


class QuizResponse(BaseModel):
    questions: list[QuizQuestion] = Field(default_factory=list)
