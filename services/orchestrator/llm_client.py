"""Generation collaborator interface, HTTP client and offline mock."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx

from .schemas import GenerationResponse, PromptMessage, TokenUsage
from .settings import Settings, get_settings

logger = logging.getLogger("uvicorn.error")

MOCK_MATH_TEXT = (
    "Using v = u + a * t with u = 0 m/s, a = 2 m/s^2 and t = 10 s, the final velocity is v = 20 m/s."
)
MOCK_TEXT = "This answer is a placeholder produced without a live model [NCERT:mock_doc:section_1]."


class GenerationService(Protocol):
    configured: bool

    async def generate(
        self,
        messages: Sequence[PromptMessage],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> GenerationResponse:
        ...


class MockGenerationService:
    """Returns a canned draft that clears the acceptance gate for English targets."""

    configured = False

    async def generate(
        self,
        messages: Sequence[PromptMessage],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> GenerationResponse:
        system = next((message.content for message in messages if message.role == "system"), "")
        text = MOCK_MATH_TEXT if "MODE: solve" in system or "MODE: derive" in system else MOCK_TEXT
        return GenerationResponse(
            text=text,
            usage=TokenUsage(prompt_tokens=500, completion_tokens=200, total_tokens=700),
            latency_ms=0.0,
        )


class HttpGenerationService:
    """Calls the LLM API's ``/v1/complete`` endpoint."""

    configured = True

    def __init__(self, base_url: str, timeout_s: float = 45.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    async def generate(
        self,
        messages: Sequence[PromptMessage],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> GenerationResponse:
        url = f"{self.base_url}/v1/complete"
        payload = {
            "messages": [message.model_dump() for message in messages],
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        started = time.perf_counter()
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()
        latency_ms = (time.perf_counter() - started) * 1000
        if not isinstance(data, dict):
            raise RuntimeError("LLM API returned malformed payload")
        return GenerationResponse(
            text=str(data.get("text") or ""),
            usage=_parse_usage(data),
            latency_ms=round(latency_ms, 1),
        )


def _parse_usage(data: Dict[str, Any]) -> TokenUsage:
    """Read OpenAI-style ``usage`` or the Ollama-style eval counters."""
    usage = data.get("usage")
    if isinstance(usage, dict):
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        completion_tokens = int(usage.get("completion_tokens") or 0)
    else:
        prompt_tokens = int(data.get("prompt_eval_count") or 0)
        completion_tokens = int(data.get("eval_count") or 0)
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )


def build_generation_service(settings: Optional[Settings] = None) -> GenerationService:
    settings = settings or get_settings()
    if not settings.llm_url:
        logger.warning("LLM_URL not set, using mock generation service")
        return MockGenerationService()
    return HttpGenerationService(settings.llm_url, timeout_s=settings.llm_request_timeout_s)
