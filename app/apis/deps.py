from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from app.core.db.base import async_session_maker
from app.core.db_services import HistoryStore
from app.core.identity import IdentityProvider, InvalidIdentityError, get_identity_provider
from app.modules.learning.client import GenerationClient
from app.modules.learning.pipeline import SessionPipeline
from app.modules.learning.sessions import SessionManager, session_manager


_history_store: Optional[HistoryStore] = None
_pipeline: Optional[SessionPipeline] = None


def get_history_store() -> HistoryStore:
    global _history_store
    if _history_store is None:
        _history_store = HistoryStore(async_session_maker)
    return _history_store


def get_pipeline(store: HistoryStore = Depends(get_history_store)) -> SessionPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = SessionPipeline(GenerationClient(), store)
    return _pipeline


def get_session_manager() -> SessionManager:
    return session_manager


async def current_identity(
    access_token: Optional[str] = None,
    authorization: Optional[str] = Header(default=None),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Optional[str]:
    """Resolve caller identity from Authorization header or `access_token` query param.

    Returns ``None`` for guests (no token). A token that fails verification is
    rejected rather than silently treated as a guest. The query param is
    useful for SSE, where setting custom headers is inconvenient.
    """
    token: Optional[str] = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    elif access_token:
        token = access_token

    try:
        return provider.resolve(token)
    except InvalidIdentityError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def require_identity(identity: Optional[str] = Depends(current_identity)) -> str:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return identity
