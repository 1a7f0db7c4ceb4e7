import asyncio
import json
from typing import Any, Mapping, Optional


class FakeClient:
    """Stands in for ``GenerationClient``; replies are served in order, the last one repeats."""

    def __init__(self, *replies: Any, delay: float = 0.0):
        self.replies = list(replies)
        self.delay = delay
        self.calls: list[tuple[str, dict]] = []

    async def generate(self, action, payload: Mapping[str, Any]) -> str:
        self.calls.append((getattr(action, "value", action), dict(payload)))
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply


def cards_json(*titles: str, clean_topic: Optional[str] = None) -> str:
    cards = [{"title": t, "content": f"About {t}"} for t in titles]
    if clean_topic is None:
        return json.dumps(cards)
    return json.dumps({"cleanTopic": clean_topic, "cards": cards})


def quiz_json(n: int = 3) -> str:
    return json.dumps(
        [
            {
                "question": f"Question {i}?",
                "type": "multiple_choice",
                "options": ["Alpha", "Beta", "Gamma", "Delta"],
                "correctAnswer": "Beta",
                "explanation": "Beta is right.",
            }
            for i in range(n)
        ]
    )
