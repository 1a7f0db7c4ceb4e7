"""In-memory registry of active learning sessions.

Sessions are kept in-process only; the durable record of an explanation is
the history table. Idle sessions are swept periodically.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.core.logging import get_logger
from app.modules.learning.models import LearningSession

logger = get_logger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class SessionNotFound(KeyError):
    pass


class SessionManager:
    def __init__(self, *, idle_seconds: int = 600, sweep_interval: int = 60) -> None:
        self.sessions: dict[str, LearningSession] = {}
        self._idle_seconds = idle_seconds
        self._sweep_interval = sweep_interval
        self._cleanup_task: Optional[asyncio.Task] = None

    def create(self, *, topic: str, identity: Optional[str]) -> LearningSession:
        session = LearningSession(topic=topic, identity=identity)
        self.sessions[session.id] = session
        return session

    def get(self, session_id: str, *, identity: Optional[str]) -> LearningSession:
        """Return a session owned by ``identity``; guests only see guest sessions."""
        session = self.sessions.get(session_id)
        if session is None or session.identity != identity:
            raise SessionNotFound(session_id)
        session.touch()
        return session

    def remove(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)

    # Idle cleanup -------------------------------------------------------
    def sweep(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or _now_utc()) - timedelta(seconds=self._idle_seconds)
        stale = [sid for sid, s in self.sessions.items() if s.last_activity < cutoff]
        for sid in stale:
            self.sessions.pop(sid, None)
        if stale:
            logger.info(f"Swept {len(stale)} idle sessions")
        return len(stale)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    def start(self) -> None:
        if self._cleanup_task and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None


session_manager = SessionManager()
