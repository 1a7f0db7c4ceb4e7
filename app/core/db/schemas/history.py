from __future__ import annotations

from datetime import datetime, timezone
from sqlalchemy import (
    DateTime,
    Integer,
    String,
    JSON,
    UniqueConstraint,
    text as sa_text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class HistoryEntry(Base):
    """A cached explanation for one (user, topic) pair."""

    __tablename__ = "history"
    __table_args__ = (
        UniqueConstraint("user_id", "topic", name="uq_history_user_topic"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # Opaque identity from the external identity provider
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    topic: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[list[dict]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        server_default=sa_text("'[]'"),
    )  # JSON array of {title, content} cards
    # Bumped on every cache hit; eviction order
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now_utc,
        index=True,
    )


__all__ = ["HistoryEntry"]
