from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from services.orchestrator import main
from services.orchestrator.handler import Orchestrator
from services.orchestrator.router import Router

TASK: Dict[str, Any] = {
    "user_msg": "What is the formula for kinetic energy",
    "mode": "explain",
    "subject": "Physics",
    "board": "CBSE",
    "class": 11,
    "session": {"session_id": "web-1"},
}


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(main, "orchestrator", Orchestrator(router=Router(default_model="gpt-4o")))
    return TestClient(main.app)


def test_orchestrate_returns_answer(client: TestClient) -> None:
    response = client.post("/v1/orchestrate", json=TASK)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["answer"]["mode"] == "explain"
    assert body["error"] is None


def test_invalid_task_is_reported_in_result(client: TestClient) -> None:
    response = client.post("/v1/orchestrate", json={**TASK, "class": 4})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INVALID_INPUT"


def test_session_reset(client: TestClient) -> None:
    client.post("/v1/orchestrate", json=TASK)
    assert client.post("/v1/sessions/web-1/reset").json() == {"session_id": "web-1", "reset": True}
    assert client.post("/v1/sessions/web-1/reset").json()["reset"] is False


def test_health_reports_collaborators(client: TestClient) -> None:
    body = client.get("/health").json()
    assert body == {"status": "ok", "llm_service": False, "rag_service": False, "version": main.VERSION}


def test_metrics_are_exposed(client: TestClient) -> None:
    client.post("/v1/orchestrate", json=TASK)
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "tutor_responses_total" in response.text
