"""Session pipeline: cache lookup, generation, normalization and history writes.

One ``load_session`` call runs as a linear async sequence:

    cache lookup -> proxy call -> normalize -> cache write -> trim history

Guests (no identity) never touch the cache. Concurrent calls for the same
(identity, topic) share one in-flight generation. Store failures degrade to
running without the cache; generation failures end the session in the
``failed`` state with a readable message.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from app.core.config import settings
from app.core.db.errors import StoreError
from app.core.logging import get_logger, log_extra
from app.modules.learning.client import GenerationClient, GenerationError
from app.modules.learning.models import (
    Card,
    ContentAction,
    ContentRequest,
    ExplanationResult,
    LearningSession,
    QuizFeedback,
    QuizQuestion,
    QuizStatus,
    SessionState,
)
from app.modules.learning.normalizer import (
    normalize_clarification,
    normalize_explanation,
    normalize_feedback,
    normalize_quiz,
)

logger = get_logger(__name__)


class CardStore(Protocol):
    async def lookup(self, user_id: str, topic: str) -> Optional[list[Card]]: ...

    async def save(self, user_id: str, topic: str, cards: list[Card]) -> None: ...

    async def trim(self, user_id: str, limit: int) -> int: ...


class InvalidSessionState(Exception):
    """Raised when an operation is not allowed in the session's current state."""


def merge_cards(cards: list[Card]) -> Card:
    """Collapse a multi-part reply into one card with a markdown section per part."""
    if len(cards) == 1:
        return cards[0]
    head, *rest = cards
    parts = [head.content] + [f"### {c.title}\n\n{c.content}" for c in rest]
    return Card(title=head.title, content="\n\n".join(parts))


class SessionPipeline:
    def __init__(
        self,
        client: GenerationClient,
        store: Optional[CardStore] = None,
        *,
        history_limit: Optional[int] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.history_limit = (
            settings.generation.history_limit if history_limit is None else history_limit
        )
        self._in_flight: dict[tuple[str, str], asyncio.Task[ExplanationResult]] = {}

    # Cache ---------------------------------------------------------------
    async def _cached_cards(self, topic: str, identity: Optional[str]) -> Optional[list[Card]]:
        if identity is None or self.store is None:
            return None
        try:
            return await self.store.lookup(identity, topic)
        except StoreError as e:
            logger.error(f"History lookup failed, generating without cache: {e}", extra=log_extra(identity, topic))
            return None

    async def _remember(self, identity: Optional[str], topic: str, cards: list[Card]) -> None:
        if identity is None or self.store is None:
            logger.info("Guest user - not saving history", extra=log_extra(identity, topic))
            return
        try:
            await self.store.save(identity, topic, cards)
            await self.store.trim(identity, self.history_limit)
        except StoreError as e:
            logger.error(f"Failed to save history: {e}", extra=log_extra(identity, topic))

    # Generation ----------------------------------------------------------
    async def _generate_explanation(self, topic: str, identity: Optional[str]) -> ExplanationResult:
        request = ContentRequest(action=ContentAction.EXPLANATION, topic=topic)
        raw = await self.client.generate(request.action, request.payload())
        result = normalize_explanation(raw, topic)
        await self._remember(identity, result.clean_topic, result.cards)
        return result

    async def _explanation_once(self, topic: str, identity: Optional[str]) -> ExplanationResult:
        key = (identity or "", topic)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._generate_explanation(topic, identity))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._generation_done(k, t))
        else:
            logger.info("Joining in-flight generation", extra=log_extra(identity, topic))
        # Shield so a cancelled waiter does not cancel the shared generation
        return await asyncio.shield(task)

    def _generation_done(self, key: tuple[str, str], task: asyncio.Task) -> None:
        self._in_flight.pop(key, None)
        # Mark the failure as retrieved even when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    def in_flight(self, topic: str, identity: Optional[str] = None) -> bool:
        return (identity or "", topic) in self._in_flight

    # Public operations ---------------------------------------------------
    async def load_session(
        self,
        topic: str,
        identity: Optional[str] = None,
        *,
        session: Optional[LearningSession] = None,
    ) -> LearningSession:
        """Load an explanation for ``topic``; never raises for generation failures."""
        session = session or LearningSession(topic=topic, identity=identity)
        session.state = SessionState.LOADING
        session.error = None
        session.touch()

        cached = await self._cached_cards(topic, identity)
        if cached:
            logger.info(f"Loaded from cache: {topic}", extra=log_extra(identity, topic))
            session.cards = cached
            session.title = topic
            session.from_cache = True
            session.state = SessionState.READY
            return session

        try:
            result = await self._explanation_once(topic, identity)
        except GenerationError as e:
            logger.error(f"Failed to fetch explanation: {e}", extra=log_extra(identity, topic))
            session.state = SessionState.FAILED
            session.error = str(e) or GenerationError.user_message
            return session

        session.cards = list(result.cards)
        session.title = result.clean_topic or topic
        session.state = SessionState.READY
        session.touch()
        return session

    async def append_clarification(self, session: LearningSession, confusion: str) -> Card:
        """Generate a clarification for ``confusion`` and append it to the session."""
        if session.state != SessionState.READY:
            raise InvalidSessionState(
                f"Cannot add a clarification while session is {session.state.value}"
            )
        session.state = SessionState.APPENDING_CLARIFICATION
        session.touch()
        try:
            request = ContentRequest(
                action=ContentAction.CLARIFICATION, topic=session.topic, confusion=confusion
            )
            raw = await self.client.generate(request.action, request.payload())
        except GenerationError as e:
            logger.error(
                f"Failed to generate clarification: {e}",
                extra=log_extra(session.identity, session.topic),
            )
            raise
        finally:
            session.state = SessionState.READY

        card = merge_cards(normalize_clarification(raw))
        session.cards.append(card)
        session.touch()
        return card

    async def load_quiz(self, topic: str, count: Optional[int] = None) -> list[QuizQuestion]:
        """Generate ``count`` questions; raises ``GenerationError`` on failure."""
        n = count if count and count > 0 else settings.generation.default_quiz_questions
        request = ContentRequest(action=ContentAction.QUIZ, topic=topic, num_questions=n)
        raw = await self.client.generate(request.action, request.payload())
        return normalize_quiz(raw, topic, limit=n)

    async def attach_quiz(self, session: LearningSession, count: Optional[int] = None) -> None:
        """Companion quiz for a loaded session; failures leave the quiz unavailable."""
        if session.state == SessionState.FAILED or not session.cards:
            session.quiz_status = QuizStatus.UNAVAILABLE
            return
        session.quiz_status = QuizStatus.PENDING
        try:
            session.quiz = await self.load_quiz(session.topic, count)
        except GenerationError as e:
            logger.error(
                f"Failed to generate quiz: {e}",
                extra=log_extra(session.identity, session.topic),
            )
            session.quiz = []
            session.quiz_status = QuizStatus.UNAVAILABLE
            return
        session.quiz_status = QuizStatus.READY

    async def quiz_feedback(self, topic: str, correct: int, total: int) -> QuizFeedback:
        request = ContentRequest(
            action=ContentAction.QUIZ_FEEDBACK, topic=topic, correct=correct, total=total
        )
        raw = await self.client.generate(request.action, request.payload())
        return normalize_feedback(raw)
