from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.core.logging import get_logger
from app.modules.learning.proxy import GeminiProxy, MissingApiKeyError, get_gemini_proxy
from .schemas import GeminiRequest, GeminiResponse


router = APIRouter()

logger = get_logger(__name__)


@router.post(
    "/api/gemini",
    response_model=GeminiResponse,
    status_code=status.HTTP_200_OK,
    tags=["gemini"],
)
async def gemini(
    req: GeminiRequest,
    proxy: GeminiProxy = Depends(get_gemini_proxy),
):
    """Build the prompt for ``action`` and forward it to the model."""
    try:
        text = await proxy.generate(req.action, req.payload)
    except MissingApiKeyError:
        logger.error("Gemini API key is not configured")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Missing Gemini API Key"},
        )
    except Exception as e:  # noqa: BLE001
        logger.exception(f"Gemini API Error: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to generate content", "details": str(e)},
        )
    return GeminiResponse(text=text)
