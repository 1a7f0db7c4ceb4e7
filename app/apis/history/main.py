from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from app.apis.deps import get_history_store, require_identity
from app.core.config import settings
from app.core.db.errors import StoreError
from app.core.db_services import HistoryStore
from app.core.history_events import HistoryEvents, history_events
from app.modules.learning.models import Card
from .schemas import HistoryItem


router = APIRouter()

HEARTBEAT_SECONDS = 15


def get_history_events() -> HistoryEvents:
    return history_events


@router.get(
    f"/{settings.app.version}/history",
    response_model=list[HistoryItem],
    tags=["history"],
)
async def list_history(
    identity: str = Depends(require_identity),
    store: HistoryStore = Depends(get_history_store),
) -> list[HistoryItem]:
    try:
        entries = await store.list_recent(identity, limit=settings.generation.history_limit)
    except StoreError:
        raise HTTPException(status_code=503, detail="History is unavailable")
    return [
        HistoryItem(
            id=e.id,
            topic=e.topic,
            cards=[Card.model_validate(c) for c in (e.content or [])],
            updated_at=e.created_at.isoformat(),
        )
        for e in entries
    ]


@router.delete(
    f"/{settings.app.version}/history/{{entry_id:int}}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["history"],
)
async def delete_history_entry(
    entry_id: int,
    identity: str = Depends(require_identity),
    store: HistoryStore = Depends(get_history_store),
) -> None:
    try:
        deleted = await store.delete(identity, entry_id)
    except StoreError:
        raise HTTPException(status_code=503, detail="History is unavailable")
    if not deleted:
        raise HTTPException(status_code=404, detail="History entry not found")


def _sse(event: str | None, data: dict) -> bytes:
    payload = json.dumps(data, ensure_ascii=False)
    parts = []
    if event:
        parts.append(f"event: {event}")
    parts.append(f"data: {payload}")
    parts.append("")
    return ("\n".join(parts) + "\n").encode("utf-8")


@router.get(
    f"/{settings.app.version}/history/events",
    tags=["history"],
)
async def stream_history_events(
    identity: str = Depends(require_identity),
    events: HistoryEvents = Depends(get_history_events),
) -> StreamingResponse:
    q = events.subscribe(identity)

    async def gen():
        try:
            yield _sse("ready", {"user_id": identity})
            while True:
                try:
                    event = await asyncio.wait_for(q.get(), timeout=HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    ts = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
                    yield _sse("ping", {"ts": ts})
                    continue
                yield _sse("history", event.to_dict())
        except asyncio.CancelledError:
            # Client disconnected
            return
        finally:
            events.unsubscribe(identity, q)

    return StreamingResponse(
        gen(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
