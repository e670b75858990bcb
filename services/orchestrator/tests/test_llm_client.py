import asyncio
import json
from typing import Any, Dict

import httpx
import pytest

from services.orchestrator import llm_client
from services.orchestrator.llm_client import (
    MOCK_MATH_TEXT,
    MOCK_TEXT,
    HttpGenerationService,
    MockGenerationService,
    build_generation_service,
)
from services.orchestrator.schemas import PromptMessage
from services.orchestrator.settings import Settings


def _messages(mode: str) -> list[PromptMessage]:
    return [
        PromptMessage(role="system", content=f"You are a tutor.\nMODE: {mode}"),
        PromptMessage(role="user", content="QUESTION: anything"),
    ]


def test_mock_returns_citation_bearing_stub() -> None:
    response = asyncio.run(MockGenerationService().generate(_messages("explain"), "gpt-4o", 0.1, 100))
    assert response.text == MOCK_TEXT
    assert "[NCERT:mock_doc:section_1]" in response.text
    assert response.usage.total_tokens == 700


def test_mock_returns_worked_solution_for_math_modes() -> None:
    response = asyncio.run(MockGenerationService().generate(_messages("solve"), "grok-2-math", 0.0, 100))
    assert response.text == MOCK_MATH_TEXT


def test_http_generation_posts_to_complete(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: Dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["payload"] = json.loads(request.read())
        return httpx.Response(
            200, json={"text": "F = ma", "model": "gpt-4o", "usage": {"prompt_tokens": 12, "completion_tokens": 3}}
        )

    real_client = httpx.AsyncClient

    def fake_client(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(llm_client.httpx, "AsyncClient", fake_client)
    service = HttpGenerationService("http://llm:8000")
    response = asyncio.run(service.generate(_messages("explain"), "gpt-4o", 0.15, 2500))

    assert seen["url"] == "http://llm:8000/v1/complete"
    assert seen["payload"]["model"] == "gpt-4o"
    assert seen["payload"]["max_tokens"] == 2500
    assert seen["payload"]["messages"][0]["role"] == "system"
    assert response.text == "F = ma"
    assert response.usage.total_tokens == 15
    assert response.latency_ms >= 0


def test_http_generation_rejects_non_object_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    real_client = httpx.AsyncClient

    def fake_client(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        kwargs["transport"] = httpx.MockTransport(lambda request: httpx.Response(200, json=["not", "a", "dict"]))
        return real_client(*args, **kwargs)

    monkeypatch.setattr(llm_client.httpx, "AsyncClient", fake_client)
    with pytest.raises(RuntimeError):
        asyncio.run(HttpGenerationService("http://llm:8000").generate(_messages("explain"), "gpt-4o", 0.1, 10))


def test_eval_counters_are_read_when_usage_is_missing() -> None:
    usage = llm_client._parse_usage({"text": "x", "prompt_eval_count": 7, "eval_count": 5})
    assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (7, 5, 12)


def test_build_generation_service_falls_back_to_mock() -> None:
    assert isinstance(build_generation_service(Settings(llm_url=None)), MockGenerationService)
    service = build_generation_service(Settings(llm_url="http://llm:8000"))
    assert isinstance(service, HttpGenerationService)
    assert service.configured is True
