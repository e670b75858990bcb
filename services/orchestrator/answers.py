"""Turn a verified draft into the final answer returned to the student."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from py_shared.citations import extract_citations

from .schemas import (
    Answer,
    Citation,
    DetectedLanguage,
    DraftAnswer,
    EvidencePack,
    FinalAnswer,
    OrchestratorTask,
    Phase,
    PlanAnswer,
    Topic,
    TopicResource,
    VerificationSummary,
    VerifierReport,
)
from .units import extract_formulas_with_units
from .validation import calculate_quality_score

logger = logging.getLogger("uvicorn.error")

EXCERPT_CHARS = 200
_JSON_BLOCK_RE = re.compile(r"\{.*\}", re.DOTALL)


def _coerce_page(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def resolve_citations(text: str, evidence: EvidencePack) -> List[Citation]:
    """Attach evidence metadata to each cited token; unknown citations stay bare."""
    citations: List[Citation] = []
    for citation_id in extract_citations(text):
        chunk = evidence.find(citation_id)
        if chunk is None:
            citations.append(Citation(citation_id=citation_id))
            continue
        title = chunk.metadata.get("doc_title")
        citations.append(
            Citation(
                citation_id=citation_id,
                doc_title=str(title) if title else None,
                page=_coerce_page(chunk.metadata.get("page")),
                excerpt=chunk.text[:EXCERPT_CHARS] or None,
            )
        )
    return citations


def _extract_json(text: str) -> Optional[Dict[str, Any]]:
    match = _JSON_BLOCK_RE.search(text)
    if not match:
        return None
    payload = json.loads(match.group(0))
    return payload if isinstance(payload, dict) else None


def default_plan(task: OrchestratorTask, language: DetectedLanguage, confidence: float, citations: List[str]) -> PlanAnswer:
    return PlanAnswer(
        plan_title=f"Study Plan for {task.subject} Class {task.grade}",
        language=language,
        phases=[
            Phase(
                phase_number=1,
                phase_name="Foundation",
                duration_days=10,
                topics=[
                    Topic(
                        topic_name="Core Concepts",
                        chapter=task.context.chapter,
                        estimated_hours=20,
                        priority="high",
                        resources=[TopicResource(type="NCERT", reference=f"Class {task.grade} {task.subject}")],
                    )
                ],
            )
        ],
        confidence=confidence,
        citations=citations,
    )


def build_plan_answer(
    task: OrchestratorTask,
    draft: DraftAnswer,
    language: DetectedLanguage,
    confidence: float,
    metadata: Dict[str, Any],
) -> PlanAnswer:
    citations = extract_citations(draft.raw_text)
    try:
        payload = _extract_json(draft.raw_text)
        if payload:
            payload.update({"mode": "plan", "language": language, "confidence": confidence, "citations": citations})
            payload.setdefault("plan_title", f"Study Plan for {task.subject} Class {task.grade}")
            payload["metadata"] = {**metadata, "structured": True}
            return PlanAnswer(**payload)
    except (ValidationError, json.JSONDecodeError) as exc:
        logger.warning("Plan JSON parse failed: %s", exc)
    plan = default_plan(task, language, confidence, citations)
    return plan.model_copy(update={"metadata": {**metadata, "structured": False}})


def build_answer(
    task: OrchestratorTask,
    draft: DraftAnswer,
    report: VerifierReport,
    evidence: EvidencePack,
    language: DetectedLanguage,
    regeneration_count: int,
    total_latency_ms: float,
) -> Answer:
    if not report.overall_pass:
        raise ValueError("refusing to finalize a draft that failed verification")

    metadata: Dict[str, Any] = {
        "model_used": draft.model_used,
        "total_tokens": draft.usage.total_tokens,
        "total_latency_ms": round(total_latency_ms, 1),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
    if task.mode == "plan":
        return build_plan_answer(task, draft, language, report.confidence_score, metadata)

    gates = report.gates
    language_details = gates.language_check.details
    metadata["quality_score"] = calculate_quality_score(
        has_citations=bool(draft.extracted_citations),
        citation_count=len(draft.extracted_citations),
        has_formulas=bool(draft.extracted_formulas),
        has_cot_leakage=bool(language_details.get("has_cot_leakage")),
        language_match=bool(language_details.get("language_match", True)),
    )
    metadata["context"] = {
        "board": task.board,
        "class": task.grade,
        "subject": task.subject,
        "chapter": task.context.chapter,
    }
    return FinalAnswer(
        answer_text=draft.raw_text,
        mode=task.mode,
        language=language,
        confidence=report.confidence_score,
        citations=resolve_citations(draft.raw_text, evidence),
        formulas=extract_formulas_with_units(draft.raw_text),
        verification_summary=VerificationSummary(
            fact_check_passed=gates.fact_check.passed,
            math_check_passed=gates.math_check.passed,
            language_check_passed=gates.language_check.passed,
            regeneration_count=regeneration_count,
        ),
        metadata=metadata,
    )
