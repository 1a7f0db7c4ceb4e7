from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class GeminiRequest(BaseModel):
    action: str = Field(default="explanation", description="explanation | clarification | quiz | quiz_feedback")
    payload: dict[str, Any] = Field(default_factory=dict)


class GeminiResponse(BaseModel):
    text: str
