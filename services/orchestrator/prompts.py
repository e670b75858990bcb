"""Default prompt builder: per-mode system templates plus evidence injection."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Dict, List

from .schemas import DetectedLanguage, EvidencePack, OrchestratorTask, PromptBuilderOutput, PromptMessage

logger = logging.getLogger("uvicorn.error")

TOOLS_BY_MODE: Dict[str, List[str]] = {
    "solve": ["calculator", "unit_checker", "latex_formatter"],
    "derive": ["latex_formatter", "citation_lookup"],
    "explain": ["rag_search", "citation_lookup"],
    "docchat": ["rag_search", "citation_check"],
    "revise": ["rag_search", "citation_lookup"],
    "strategy": ["pyq_analyzer", "weightage_calc"],
    "plan": ["date_calculator", "revision_cycler"],
}

BASE_TEMPLATE = """You are an AI tutor for Indian students preparing for {board} examinations.
MODE: {mode}
STUDENT: Class {grade}, {subject}
LANGUAGE: {language}

{mode_rules}

{language_rules}

CRITICAL:
- NO chain-of-thought reasoning in output
- Keep every formula in English notation (F = ma)
- Cite facts as [NCERT:doc_id:section] or [PYQ:exam:year:slot:qid]"""

MODE_RULES: Dict[str, str] = {
    "explain": "Explain the concept from first principles, then give one worked example. Cite every factual claim.",
    "solve": "Solve the problem step by step. Write units in every step and keep significant figures consistent.",
    "derive": "Derive the result step by step. State assumptions and keep units explicit.",
    "revise": "Produce compact revision notes: key points, formulas and common mistakes. Cite sources.",
    "docchat": "Answer strictly from the supplied evidence. If the evidence is insufficient, say so.",
    "strategy": "Advise on exam strategy using chapter weightage and previous-year question trends.",
    "plan": (
        "Create a study plan. Return a JSON object with plan_title, duration, phases (with topics), "
        "revision_schedule and tips_and_strategy."
    ),
}

LANGUAGE_RULES: Dict[str, str] = {
    "english": "Respond in clear English.",
    "hindi": "Respond in Hindi (Devanagari script). Keep formulas and units in English.",
    "hinglish": "Respond in Hinglish (Hindi words in Latin script). Keep formulas and units in English.",
}

USER_INSTRUCTIONS: Dict[str, str] = {
    "solve": "Solve step-by-step with unit verification.",
    "explain": "Provide a comprehensive explanation with proper citations.",
    "docchat": "Answer based strictly on the evidence above. Include citations.",
    "plan": "Create a detailed study plan with phases, topics, and revision schedule.",
}


def _format_evidence(evidence: EvidencePack) -> str:
    lines = ["EVIDENCE FROM DOCUMENTS:", ""]
    for index, chunk in enumerate(evidence.chunks, start=1):
        title = chunk.metadata.get("doc_title") or "Document"
        page = chunk.metadata.get("page")
        lines.append(f"[{index}] {chunk.citation}")
        lines.append(f"{title} (p.{page})" if page else str(title))
        lines.append(chunk.text.strip())
        lines.append("")
    return "\n".join(lines)


def estimate_tokens(text: str) -> int:
    """Roughly four characters per token."""
    return math.ceil(len(text) / 4)


class DefaultPromptBuilder:
    def build_system_prompt(self, task: OrchestratorTask, language: DetectedLanguage) -> str:
        return BASE_TEMPLATE.format(
            board=task.board,
            mode=task.mode,
            grade=task.grade,
            subject=task.subject,
            language=language,
            mode_rules=MODE_RULES[task.mode],
            language_rules=LANGUAGE_RULES[language],
        )

    def build_user_prompt(self, task: OrchestratorTask, evidence: EvidencePack) -> str:
        sections = [f"QUESTION: {task.user_msg}", ""]
        if evidence.chunks:
            sections.append(_format_evidence(evidence))
        elif task.mode == "docchat":
            sections.extend(["EVIDENCE: No relevant information found in uploaded documents.", ""])
        instruction = USER_INSTRUCTIONS.get(task.mode)
        if instruction:
            sections.append(instruction)
        return "\n".join(sections).strip() + "\n"

    def build(self, task: OrchestratorTask, evidence: EvidencePack, language: DetectedLanguage) -> PromptBuilderOutput:
        logger.debug("Building prompt (mode=%s, language=%s)", task.mode, language)
        system_prompt = self.build_system_prompt(task, language)
        user_prompt = self.build_user_prompt(task, evidence)

        messages = [PromptMessage(role="system", content=system_prompt)]
        messages.extend(
            PromptMessage(role=turn.role, content=turn.content) for turn in task.context.conversation_history
        )
        messages.append(PromptMessage(role="user", content=user_prompt))

        math_mode = task.mode in ("solve", "derive")
        return PromptBuilderOutput(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            messages=messages,
            mode=task.mode,
            language=language,
            evidence_included=bool(evidence.chunks),
            evidence_summary={
                "chunk_count": len(evidence.chunks),
                "sources": [chunk.citation for chunk in evidence.chunks],
            },
            tools_declared=list(TOOLS_BY_MODE.get(task.mode, [])),
            constraints={
                "formulas_in_english": True,
                "require_citations": not math_mode,
                "no_cot_leakage": True,
                "verify_units": math_mode,
            },
            metadata={
                "prompt_tokens_estimate": estimate_tokens(system_prompt + user_prompt),
                "built_at": datetime.now(timezone.utc).isoformat(),
            },
        )
