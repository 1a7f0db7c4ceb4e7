from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from app.core.logging import get_logger
from app.modules.learning.models import LearningSession, QuizStatus


JobCallable = Callable[[], Awaitable[None]]

logger = get_logger(__name__)


class BackgroundQueue:
    """Simple in-process async job queue with fixed concurrency."""

    def __init__(self, *, concurrency: int = 2) -> None:
        self.concurrency = max(1, int(concurrency))
        self._queue: asyncio.Queue[JobCallable] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._started = False

    async def _worker(self, idx: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await job()
            except Exception as e:  # noqa: BLE001
                # Keep the worker alive; the job owns its own error state
                logger.exception(f"[queue] Worker {idx} job failed: {e}")
            finally:
                self._queue.task_done()

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        # Rebind to the running loop, keeping jobs enqueued before start
        pending: list[JobCallable] = []
        while not self._queue.empty():
            pending.append(self._queue.get_nowait())
        self._queue = asyncio.Queue()
        for job in pending:
            self._queue.put_nowait(job)
        for i in range(self.concurrency):
            self._workers.append(asyncio.create_task(self._worker(i)))

    async def join(self) -> None:
        await self._queue.join()

    async def stop(self) -> None:
        # Drain queue and cancel workers
        await self._queue.join()
        for t in self._workers:
            t.cancel()
        self._workers.clear()
        self._started = False

    def enqueue(self, fn: JobCallable) -> None:
        self._queue.put_nowait(fn)


queue = BackgroundQueue(concurrency=2)


def enqueue_quiz_generation(
    pipeline,
    session: LearningSession,
    *,
    count: Optional[int] = None,
    target: Optional[BackgroundQueue] = None,
) -> None:
    """Enqueue the companion quiz for a session whose explanation has loaded."""
    session.quiz_status = QuizStatus.PENDING

    async def _job() -> None:
        await pipeline.attach_quiz(session, count)

    (target or queue).enqueue(_job)
