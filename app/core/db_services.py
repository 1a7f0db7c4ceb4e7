"""Database service classes for explanation history and user profiles."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.db.errors import StoreError
from app.core.db.schemas.history import HistoryEntry
from app.core.db.schemas.user_profile import UserProfile
from app.core.history_events import HistoryEvent, HistoryEvents, history_events
from app.core.logging import get_logger
from app.modules.learning.models import Card

logger = get_logger(__name__)

T = TypeVar("T")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class HistoryService:
    """Service for the per-user explanation history table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, user_id: str, topic: str) -> Optional[HistoryEntry]:
        """Exact-match lookup of a topic for one user."""
        result = await self.session.execute(
            select(HistoryEntry)
            .where(HistoryEntry.user_id == user_id, HistoryEntry.topic == topic)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self, user_id: str, topic: str, content: list[dict]
    ) -> tuple[HistoryEntry, bool]:
        """Insert a new entry or bump timestamp and overwrite content of an existing one.

        Returns the entry and whether it was created.
        """
        entry = await self.find(user_id, topic)
        created = entry is None
        if entry is None:
            entry = HistoryEntry(
                user_id=user_id, topic=topic, content=content, created_at=_now_utc()
            )
            self.session.add(entry)
        else:
            entry.content = content
            entry.created_at = _now_utc()
        await self.session.commit()
        await self.session.refresh(entry)
        return entry, created

    async def touch(self, entry: HistoryEntry) -> None:
        """Move an entry to the front of the recency order."""
        entry.created_at = _now_utc()
        await self.session.commit()

    async def list_recent(self, user_id: str, limit: Optional[int] = None) -> list[HistoryEntry]:
        q = (
            select(HistoryEntry)
            .where(HistoryEntry.user_id == user_id)
            .order_by(HistoryEntry.created_at.desc(), HistoryEntry.id.desc())
        )
        if limit is not None:
            q = q.limit(limit)
        rows = await self.session.execute(q)
        return list(rows.scalars().all())

    async def trim(self, user_id: str, limit: int) -> list[int]:
        """Keep the ``limit`` most recent entries for a user; delete the rest."""
        rows = await self.session.execute(
            select(HistoryEntry.id)
            .where(HistoryEntry.user_id == user_id)
            .order_by(HistoryEntry.created_at.desc(), HistoryEntry.id.desc())
        )
        ids = [r for r in rows.scalars().all()]
        to_delete = ids[max(0, limit):]
        if to_delete:
            await self.session.execute(
                delete(HistoryEntry).where(HistoryEntry.id.in_(to_delete))
            )
            await self.session.commit()
        return to_delete

    async def delete(self, user_id: str, entry_id: int) -> bool:
        result = await self.session.execute(
            select(HistoryEntry).where(
                HistoryEntry.id == entry_id, HistoryEntry.user_id == user_id
            )
        )
        entry = result.scalar_one_or_none()
        if not entry:
            return False
        await self.session.delete(entry)
        await self.session.commit()
        return True


class HistoryStore:
    """Session-per-call facade over ``HistoryService`` used by the pipeline.

    Database failures are raised as ``StoreError`` so callers can degrade to
    running without the cache.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        events: Optional[HistoryEvents] = None,
    ) -> None:
        self.session_factory = session_factory
        self.events = events or history_events

    async def _run(self, op: Callable[[HistoryService], Awaitable[T]]) -> T:
        try:
            async with self.session_factory() as session:
                return await op(HistoryService(session))
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    async def lookup(self, user_id: str, topic: str) -> Optional[list[Card]]:
        """Return cached cards for a topic and bump the entry, or ``None`` on miss."""

        async def op(svc: HistoryService) -> Optional[tuple[int, list]]:
            entry = await svc.find(user_id, topic)
            if entry is None or not entry.content:
                return None
            await svc.touch(entry)
            return entry.id, list(entry.content)

        found = await self._run(op)
        if found is None:
            return None
        entry_id, content = found
        self.events.publish(
            HistoryEvent(type="update", user_id=user_id, topic=topic, entry_id=entry_id)
        )
        return [Card.model_validate(c) for c in content]

    async def save(self, user_id: str, topic: str, cards: list[Card]) -> None:
        content = [c.model_dump() for c in cards]
        entry, created = await self._run(lambda svc: svc.upsert(user_id, topic, content))
        self.events.publish(
            HistoryEvent(
                type="insert" if created else "update",
                user_id=user_id,
                topic=topic,
                entry_id=entry.id,
            )
        )

    async def trim(self, user_id: str, limit: int) -> int:
        deleted = await self._run(lambda svc: svc.trim(user_id, limit))
        for entry_id in deleted:
            self.events.publish(
                HistoryEvent(type="delete", user_id=user_id, entry_id=entry_id)
            )
        return len(deleted)

    async def list_recent(self, user_id: str, limit: Optional[int] = None) -> list[HistoryEntry]:
        return await self._run(lambda svc: svc.list_recent(user_id, limit))

    async def delete(self, user_id: str, entry_id: int) -> bool:
        deleted = await self._run(lambda svc: svc.delete(user_id, entry_id))
        if deleted:
            self.events.publish(
                HistoryEvent(type="delete", user_id=user_id, entry_id=entry_id)
            )
        return deleted


class ProfileService:
    """Service for the per-user profile (display name and avatar)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_or_create(self, user_id: str) -> UserProfile:
        result = await self.session.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        )
        profile = result.scalar_one_or_none()
        if not profile:
            profile = UserProfile(user_id=user_id)
            self.session.add(profile)
            await self.session.commit()
            await self.session.refresh(profile)
        return profile

    async def update(self, user_id: str, **fields) -> UserProfile:
        profile = await self.get_or_create(user_id)
        for field, value in fields.items():
            setattr(profile, field, value)
        await self.session.commit()
        await self.session.refresh(profile)
        return profile
