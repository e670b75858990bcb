"""Retrieval collaborator interface and its implementations."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

import httpx

from .schemas import EvidenceChunk
from .settings import Settings, get_settings

logger = logging.getLogger("uvicorn.error")


class RetrievalService(Protocol):
    configured: bool

    async def retrieve(self, query: str, filters: Dict[str, Any], top_k: int) -> List[EvidenceChunk]:
        ...


class NullRetrievalService:
    """Used when no vector search backend is configured; never finds anything."""

    configured = False

    async def retrieve(self, query: str, filters: Dict[str, Any], top_k: int) -> List[EvidenceChunk]:
        return []


class HttpRetrievalService:
    """Calls the RAG service's ``/v1/retrieve`` endpoint."""

    configured = True

    def __init__(self, base_url: str, timeout_s: float = 15.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    async def retrieve(self, query: str, filters: Dict[str, Any], top_k: int) -> List[EvidenceChunk]:
        url = f"{self.base_url}/v1/retrieve"
        payload = {"query": query, "filters": filters, "top_k": top_k}
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()
        if not isinstance(data, dict):
            raise RuntimeError("RAG response payload must be a JSON object.")
        chunks = data.get("chunks") or []
        return [to_chunk(raw, index) for index, raw in enumerate(chunks) if isinstance(raw, dict)]


def to_chunk(raw: Dict[str, Any], index: int = 0) -> EvidenceChunk:
    """Normalise a retrieval hit; ``score`` is accepted for ``similarity_score``."""
    score = raw.get("similarity_score")
    if not isinstance(score, (int, float)):
        score = raw.get("score")
    metadata = raw.get("metadata")
    return EvidenceChunk(
        chunk_id=str(raw.get("chunk_id") or raw.get("doc_id") or f"chunk_{index}"),
        text=str(raw.get("text") or ""),
        citation=str(raw.get("citation") or ""),
        metadata=metadata if isinstance(metadata, dict) else {},
        similarity_score=max(0.0, min(1.0, float(score or 0.0))),
    )


def average_similarity(chunks: Iterable[EvidenceChunk]) -> float:
    scores = [chunk.similarity_score for chunk in chunks]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def build_retrieval_service(settings: Optional[Settings] = None) -> RetrievalService:
    settings = settings or get_settings()
    if not settings.rag_url:
        logger.warning("RAG_URL not set, retrieval disabled")
        return NullRetrievalService()
    return HttpRetrievalService(settings.rag_url, timeout_s=settings.request_timeout_s)
