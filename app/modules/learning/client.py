"""HTTP client for the Gemini proxy endpoint.

The proxy holds the model credential; this client only knows the proxy URL.
Each call is bounded by a whole-request timeout. A timed-out call is retried
once after a short delay; every other failure surfaces immediately as one of
the ``GenerationError`` subclasses below.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from app.modules.learning.models import ContentAction

logger = get_logger(__name__)


class GenerationError(Exception):
    """Base class for failures talking to the generation proxy."""

    user_message = "Failed to generate content. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)


class GenerationTimeout(GenerationError):
    user_message = (
        "Request timeout. The AI service is taking too long to respond. "
        "Please try again."
    )


class GenerationNetworkError(GenerationError):
    user_message = "Network error. Please check your internet connection."


class GenerationServerError(GenerationError):
    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(message or f"API Error: {status_code}")


class GenerationParseError(GenerationError):
    user_message = "The AI service returned an unreadable response."


class GenerationClient:
    """Sends ``{action, payload}`` to the proxy and returns the raw model text."""

    def __init__(
        self,
        proxy_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        retry_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        cfg = settings.generation
        self.proxy_url = proxy_url or cfg.proxy_url
        self.timeout = cfg.timeout_seconds if timeout is None else timeout
        self.retry_delay = cfg.retry_delay_seconds if retry_delay is None else retry_delay
        self.max_retries = max(0, cfg.max_retries if max_retries is None else max_retries)
        self._transport = transport
        self._headers = dict(headers or {})

    async def _post(self, body: dict[str, Any]) -> httpx.Response:
        # Timeouts are enforced by the caller via cancellation
        async with httpx.AsyncClient(
            transport=self._transport, timeout=None, headers=self._headers
        ) as client:
            return await client.post(self.proxy_url, json=body)

    async def _attempt(self, body: dict[str, Any]) -> str:
        try:
            response = await asyncio.wait_for(self._post(body), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise GenerationTimeout() from e
        except httpx.TransportError as e:
            logger.error(f"Network failure calling proxy: {e}")
            raise GenerationNetworkError() from e

        if not response.is_success:
            raise GenerationServerError(response.status_code, _error_message(response))

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationParseError() from e
        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise GenerationParseError()
        return text

    async def generate(
        self, action: ContentAction | str, payload: Mapping[str, Any]
    ) -> str:
        """Return the raw, untrusted model text for ``action``."""
        body = {"action": ContentAction(action).value, "payload": dict(payload)}
        attempt = 0
        while True:
            try:
                return await self._attempt(body)
            except GenerationTimeout:
                logger.error(f"Request timeout after {self.timeout} seconds")
                if attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.info(
                    f"Retrying... (Attempt {attempt + 1}/{self.max_retries + 1})"
                )
                await asyncio.sleep(self.retry_delay)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("details", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return f"API Error: {response.reason_phrase or response.status_code}"
