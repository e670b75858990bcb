"""FastAPI entrypoint for the tutor orchestrator."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from .handler import build_orchestrator
from .schemas import OrchestratorResult
from .settings import get_settings

VERSION = "1.0.0"

settings = get_settings()
app = FastAPI(title=settings.app_name, version=VERSION)
Instrumentator().instrument(app).expose(app)

orchestrator = build_orchestrator(settings)


@app.post("/v1/orchestrate", response_model=OrchestratorResult)
async def orchestrate(task: Dict[str, Any]) -> OrchestratorResult:
    # Validation happens inside the pipeline so bad tasks come back as INVALID_INPUT results.
    return await orchestrator.run(task)


@app.post("/v1/sessions/{session_id}/reset")
async def reset_session(session_id: str) -> Dict[str, Any]:
    return {"session_id": session_id, "reset": orchestrator.sessions.reset(session_id)}


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "llm_service": bool(orchestrator.generation.configured),
        "rag_service": bool(orchestrator.planner.retrieval.configured),
        "version": VERSION,
    }
