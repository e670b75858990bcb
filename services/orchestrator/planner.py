"""Tool planner that decides when to ground an answer in retrieved evidence."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from .rag import NullRetrievalService, RetrievalService, average_similarity
from .schemas import EvidenceChunk, EvidencePack, OrchestratorTask

logger = logging.getLogger("uvicorn.error")

RAG_MODES = ("explain", "docchat", "revise", "strategy", "plan")
RETRIEVAL_TOP_K = 6
MIN_SUFFICIENT_CHUNKS = 2
MIN_AVG_SIMILARITY = 0.5


def should_use_rag(task: OrchestratorTask) -> bool:
    """Grounding modes retrieve when documents are attached; docchat always retrieves."""
    if task.mode not in RAG_MODES:
        return False
    return bool(task.context.doc_ids) or task.mode == "docchat"


def build_filters(task: OrchestratorTask) -> Dict[str, Any]:
    filters: Dict[str, Any] = {"board": task.board, "class": task.grade, "subject": task.subject}
    if task.context.chapter:
        filters["chapter"] = task.context.chapter
    if task.context.doc_ids:
        filters["doc_ids"] = list(task.context.doc_ids)
    return filters


def empty_evidence_pack(query: str, filters: Optional[Dict[str, Any]] = None) -> EvidencePack:
    return EvidencePack(retrieval_query=query, filters_applied=filters or {})


def mock_evidence_pack(task: OrchestratorTask) -> EvidencePack:
    """Two canned NCERT chunks for development without a vector store."""
    doc_id = f"{task.subject.lower()}_{task.grade}_ch1"
    metadata = {
        "doc_title": f"NCERT {task.subject} Class {task.grade}",
        "chapter": "Chapter 1",
        "board": task.board,
        "class": task.grade,
        "subject": task.subject,
    }
    chunks = [
        EvidenceChunk(
            chunk_id="mock_chunk_1",
            text=f"This is a mock evidence chunk for {task.subject} Class {task.grade}.",
            citation=f"NCERT:{doc_id}:1.1.1",
            metadata={**metadata, "page": 10},
            similarity_score=0.85,
        ),
        EvidenceChunk(
            chunk_id="mock_chunk_2",
            text=f"Another mock evidence chunk about: {task.user_msg}",
            citation=f"NCERT:{doc_id}:1.2.1",
            metadata={**metadata, "page": 12},
            similarity_score=0.78,
        ),
    ]
    return EvidencePack(
        chunks=chunks,
        total_retrieved=len(chunks),
        retrieval_query=task.user_msg,
        filters_applied={"board": task.board, "class": task.grade, "subject": task.subject},
        has_sufficient_evidence=True,
        avg_similarity=average_similarity(chunks),
    )


class ToolPlanner:
    """Builds the evidence pack for a task; retrieval failures degrade to no evidence."""

    def __init__(
        self,
        retrieval: Optional[RetrievalService] = None,
        top_k: int = RETRIEVAL_TOP_K,
        timeout_s: Optional[float] = None,
        mock_evidence: bool = False,
    ) -> None:
        self.retrieval: RetrievalService = retrieval if retrieval is not None else NullRetrievalService()
        self.top_k = top_k
        self.timeout_s = timeout_s
        self.mock_evidence = mock_evidence

    async def execute_plan(self, task: OrchestratorTask) -> EvidencePack:
        logger.debug("Executing tool plan (mode=%s)", task.mode)
        if not should_use_rag(task):
            logger.debug("RAG not needed for mode=%s", task.mode)
            return empty_evidence_pack(task.user_msg)
        if not getattr(self.retrieval, "configured", True):
            if self.mock_evidence:
                logger.warning("No RAG service configured, returning mock evidence pack")
                return mock_evidence_pack(task)
            logger.warning("No RAG service configured, returning empty evidence pack")
            return empty_evidence_pack(task.user_msg)

        filters = build_filters(task)
        try:
            chunks = await asyncio.wait_for(
                self.retrieval.retrieve(task.user_msg, filters, self.top_k),
                timeout=self.timeout_s,
            )
        except Exception as exc:
            logger.error("RAG retrieval failed: %r", exc)
            return empty_evidence_pack(task.user_msg, filters)

        chunks = list(chunks)
        avg_similarity = average_similarity(chunks)
        sufficient = len(chunks) >= MIN_SUFFICIENT_CHUNKS and avg_similarity >= MIN_AVG_SIMILARITY
        logger.info(
            "RAG retrieval complete (chunks=%d, avg_similarity=%.3f, sufficient=%s)",
            len(chunks),
            avg_similarity,
            sufficient,
        )
        return EvidencePack(
            chunks=chunks,
            total_retrieved=len(chunks),
            retrieval_query=task.user_msg,
            filters_applied=filters,
            has_sufficient_evidence=sufficient,
            avg_similarity=avg_similarity,
        )
