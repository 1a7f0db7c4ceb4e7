"""Server-side half of the generation call: prompt building plus the model call.

The model credential never leaves this module. Imports for the LLM provider
are kept lazy to avoid import-time errors when credentials are missing.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from pydantic_ai import Agent

from app.core.config import settings
from app.core.logging import get_logger
from app.modules.learning.prompts import build_prompt

logger = get_logger(__name__)


class MissingApiKeyError(RuntimeError):
    """Raised when no Gemini API key is configured."""


def _build_google_model(model_name: str, api_key: str):
    """Build the Google Gemini model provider (lazy import)."""
    from pydantic_ai.models.google import GoogleModel
    from pydantic_ai.providers.google import GoogleProvider

    provider = GoogleProvider(api_key=api_key)
    return GoogleModel(model_name, provider=provider)


class GeminiProxy:
    """Builds the prompt for an action and returns the model's raw text."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        model_factory: Optional[Callable[[str, str], Any]] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model_name = model_name or settings.gemini_model
        self._model_factory = model_factory or _build_google_model

    def build_agent(self) -> Agent[None, str]:
        if not self.api_key:
            raise MissingApiKeyError("Missing Gemini API Key")
        model = self._model_factory(self.model_name, self.api_key)
        return Agent[None, str](model=model, output_type=str)

    async def generate(self, action: str, payload: Mapping[str, Any] | None) -> str:
        agent = self.build_agent()
        prompt = build_prompt(action, payload)
        logger.info(f"Action: {action}")
        res = await agent.run(prompt)
        return res.output


_proxy: Optional[GeminiProxy] = None


def get_gemini_proxy() -> GeminiProxy:
    global _proxy
    if _proxy is None:
        _proxy = GeminiProxy()
    return _proxy
