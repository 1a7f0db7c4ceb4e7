"""In-process change feed for history entries.

Subscribers get their own ``asyncio.Queue``; the SSE endpoint drains it for
one identity. Events are dropped for subscribers whose queue is full rather
than blocking the writer.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, asdict
from typing import Optional

from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class HistoryEvent:
    type: str  # insert | update | delete
    user_id: str
    topic: Optional[str] = None
    entry_id: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


class HistoryEvents:
    def __init__(self, *, max_queue: int = 100) -> None:
        self._subscribers: dict[str, set[asyncio.Queue[HistoryEvent]]] = {}
        self._max_queue = max_queue

    def subscribe(self, user_id: str) -> asyncio.Queue[HistoryEvent]:
        q: asyncio.Queue[HistoryEvent] = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.setdefault(user_id, set()).add(q)
        return q

    def unsubscribe(self, user_id: str, q: asyncio.Queue[HistoryEvent]) -> None:
        subs = self._subscribers.get(user_id)
        if not subs:
            return
        subs.discard(q)
        if not subs:
            self._subscribers.pop(user_id, None)

    def publish(self, event: HistoryEvent) -> None:
        for q in list(self._subscribers.get(event.user_id, ())):
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping history event for slow subscriber: {event.type}")

    def count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))


history_events = HistoryEvents()
