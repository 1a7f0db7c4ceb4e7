import asyncio
import json
import time

import httpx
import pytest

from app.modules.learning.client import (
    GenerationClient,
    GenerationNetworkError,
    GenerationParseError,
    GenerationServerError,
    GenerationTimeout,
)
from app.modules.learning.models import ContentAction


URL = "http://proxy.test/api/gemini"


def _client(handler, **kwargs) -> GenerationClient:
    kwargs.setdefault("timeout", 0.2)
    kwargs.setdefault("retry_delay", 0.05)
    return GenerationClient(URL, transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_returns_text_field_and_sends_action_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": "raw model text"})

    text = await _client(handler).generate(ContentAction.EXPLANATION, {"topic": "gravity"})
    assert text == "raw model text"
    assert seen[0].url == URL
    assert json.loads(seen[0].content) == {
        "action": "explanation",
        "payload": {"topic": "gravity"},
    }


@pytest.mark.asyncio
async def test_timeout_retries_exactly_once_then_fails():
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        await asyncio.sleep(5)
        return httpx.Response(200, json={"text": "too late"})

    client = _client(handler)
    started = time.monotonic()
    with pytest.raises(GenerationTimeout):
        await client.generate("explanation", {"topic": "x"})
    elapsed = time.monotonic() - started

    assert calls == 2
    assert elapsed >= 2 * client.timeout + client.retry_delay
    assert elapsed < 2


@pytest.mark.asyncio
async def test_retry_after_timeout_can_succeed():
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            await asyncio.sleep(5)
        return httpx.Response(200, json={"text": "second time lucky"})

    assert await _client(handler).generate("quiz", {"topic": "x"}) == "second time lucky"
    assert calls == 2


@pytest.mark.asyncio
async def test_network_error_is_not_retried():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GenerationNetworkError) as exc:
        await _client(handler).generate("explanation", {"topic": "x"})
    assert calls == 1
    assert "Network error" in str(exc.value)


@pytest.mark.asyncio
async def test_server_error_carries_proxy_details():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            500, json={"error": "Failed to generate content", "details": "quota exceeded"}
        )

    with pytest.raises(GenerationServerError) as exc:
        await _client(handler).generate("explanation", {"topic": "x"})
    assert exc.value.status_code == 500
    assert str(exc.value) == "quota exceeded"


@pytest.mark.asyncio
async def test_server_error_without_body_uses_status_text():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="")

    with pytest.raises(GenerationServerError) as exc:
        await _client(handler).generate("explanation", {"topic": "x"})
    assert str(exc.value) == "API Error: Service Unavailable"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"content": "wrong key"}),
    ],
)
async def test_unreadable_success_body_is_parse_error(response):
    with pytest.raises(GenerationParseError):
        await _client(lambda request: response).generate("explanation", {"topic": "x"})


@pytest.mark.asyncio
async def test_unknown_action_is_rejected_before_sending():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("should not be called")

    with pytest.raises(ValueError):
        await _client(handler).generate("poem", {"topic": "x"})
