"""Learning module exports."""

from .models import Card, LearningSession, QuizQuestion, SessionState
from .client import GenerationClient, GenerationError
from .pipeline import SessionPipeline

__all__ = [
    "Card",
    "LearningSession",
    "QuizQuestion",
    "SessionState",
    "GenerationClient",
    "GenerationError",
    "SessionPipeline",
]
