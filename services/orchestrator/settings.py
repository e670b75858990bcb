"""Configuration helpers for the orchestrator service."""

from __future__ import annotations

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv()


DEFAULT_MODEL = "gpt-4o"
STRICT_FALLBACK_MODEL = "claude-3.5-sonnet"


class Settings(BaseSettings):
    model_config = {"protected_namespaces": ()}
    app_name: str = Field(default="Tutor Orchestrator Service")
    llm_url: str | None = None
    rag_url: str | None = None
    request_timeout_s: float = Field(default=15.0, gt=0.0)
    llm_request_timeout_s: float = Field(default=45.0, gt=0.0)
    run_timeout_s: float | None = Field(default=None, gt=0.0)
    retrieval_top_k: int = Field(default=6, gt=0)
    default_model: str = Field(default=DEFAULT_MODEL)
    strict_fallback_model: str = Field(default=STRICT_FALLBACK_MODEL)
    max_sessions: int = Field(default=10_000, gt=0)
    mock_evidence: bool = False


def _coerce_float(env_name: str, default: float) -> float:
    raw = os.getenv(env_name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:  # pragma: no cover - defensive guard
        raise RuntimeError(f"Invalid float for {env_name}: {raw}") from exc


def _coerce_optional_float(env_name: str) -> float | None:
    raw = os.getenv(env_name)
    if not raw:
        return None
    return _coerce_float(env_name, 0.0)


def _coerce_int(env_name: str, default: int) -> int:
    raw = os.getenv(env_name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:  # pragma: no cover - defensive guard
        raise RuntimeError(f"Invalid integer for {env_name}: {raw}") from exc


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coerce_optional(env_name: str) -> str | None:
    raw = os.getenv(env_name)
    return raw if raw else None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        llm_url=_coerce_optional("LLM_URL"),
        rag_url=_coerce_optional("RAG_URL"),
        request_timeout_s=_coerce_float("REQUEST_TIMEOUT_S", 15.0),
        llm_request_timeout_s=_coerce_float("LLM_REQUEST_TIMEOUT_S", 45.0),
        run_timeout_s=_coerce_optional_float("RUN_TIMEOUT_S"),
        retrieval_top_k=_coerce_int("RETRIEVAL_TOP_K", 6),
        default_model=os.getenv("DEFAULT_MODEL", DEFAULT_MODEL),
        strict_fallback_model=os.getenv("STRICT_FALLBACK_MODEL", STRICT_FALLBACK_MODEL),
        max_sessions=_coerce_int("MAX_SESSIONS", 10_000),
        mock_evidence=_as_bool(os.getenv("MOCK_EVIDENCE"), False),
    )
