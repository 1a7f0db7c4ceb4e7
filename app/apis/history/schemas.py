from __future__ import annotations

from pydantic import BaseModel, Field

from app.modules.learning.models import Card


class HistoryItem(BaseModel):
    id: int
    topic: str
    cards: list[Card] = Field(default_factory=list)
    updated_at: str
