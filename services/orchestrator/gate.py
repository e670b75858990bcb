"""Acceptance gate: fact, math and language checks over a generated draft."""

from __future__ import annotations

import logging
from typing import List, Optional

from py_shared.citations import extract_citations, find_uncited_sentences, validate_all_citations

from .language import detect_draft_language
from .schemas import (
    DetectedLanguage,
    DraftAnswer,
    GateResult,
    MATH_MODES,
    RegenerationAction,
    RegenerationStrategy,
    TaskMode,
    VerifierGates,
    VerifierReport,
)
from .settings import get_settings
from .units import check_formulas_in_english, extract_formulas_with_units, verify_sig_figs, verify_unit_consistency
from .validation import detect_cot_leakage, extract_factual_claims

logger = logging.getLogger("uvicorn.error")

CONFIDENCE_MIN = 0.82
AUTO_REGENERATE_BELOW = 0.72
MAX_REGENERATIONS = 2

FACT_WEIGHT = 0.4
MATH_WEIGHT = 0.3
LANGUAGE_WEIGHT = 0.3


def disabled_gate() -> GateResult:
    return GateResult(enabled=False, passed=True, score=1.0)


def calculate_confidence(fact_check: GateResult, math_check: GateResult, language_check: GateResult) -> float:
    """Weighted mean of the enabled gate scores, rounded to two decimals."""
    fact_weight = FACT_WEIGHT if fact_check.enabled else 0.0
    math_weight = MATH_WEIGHT if math_check.enabled else 0.0
    total_weight = fact_weight + math_weight + LANGUAGE_WEIGHT
    weighted = (
        fact_check.score * fact_weight
        + math_check.score * math_weight
        + language_check.score * LANGUAGE_WEIGHT
    ) / total_weight
    return round(weighted, 2)


class AcceptanceGate:
    """Stateless verifier; safe to share across concurrent requests."""

    def __init__(self, strict_fallback_model: Optional[str] = None) -> None:
        self.strict_fallback_model = strict_fallback_model or get_settings().strict_fallback_model

    def verify(
        self,
        draft: DraftAnswer,
        target_language: DetectedLanguage,
        mode: TaskMode,
        attempt_number: int = 0,
    ) -> VerifierReport:
        logger.info(
            "Running acceptance gate (mode=%s, target_language=%s, attempt=%d)",
            mode,
            target_language,
            attempt_number,
        )
        fact_check = self.run_fact_check(draft, mode)
        math_check = self.run_math_check(draft, mode)
        language_check = self.run_language_check(draft, target_language)

        confidence = calculate_confidence(fact_check, math_check, language_check)
        overall_pass = (
            confidence >= CONFIDENCE_MIN and fact_check.passed and math_check.passed and language_check.passed
        )
        should_regenerate = confidence < AUTO_REGENERATE_BELOW or not overall_pass

        if should_regenerate:
            strategy = self.regeneration_strategy(attempt_number, fact_check, math_check, language_check)
        else:
            strategy = RegenerationStrategy()

        logger.info(
            "Verification complete (overall_pass=%s, confidence=%.2f, should_regenerate=%s, action=%s)",
            overall_pass,
            confidence,
            should_regenerate,
            strategy.action.value,
        )
        return VerifierReport(
            overall_pass=overall_pass,
            confidence_score=confidence,
            should_regenerate=should_regenerate,
            gates=VerifierGates(fact_check=fact_check, math_check=math_check, language_check=language_check),
            regeneration_strategy=strategy,
        )

    def run_fact_check(self, draft: DraftAnswer, mode: TaskMode) -> GateResult:
        # Worked problems are judged on their math, not on citations.
        if mode in MATH_MODES:
            return disabled_gate()

        text = draft.raw_text
        citations = extract_citations(text)
        claims = extract_factual_claims(text)
        unsupported = find_uncited_sentences(text)
        cited_claims = len(claims) - len(unsupported)

        score = cited_claims / len(claims) if claims else 0.5
        if len(citations) >= 2:
            score = min(1.0, score + 0.1)
        score = max(0.0, score)

        errors: List[str] = []
        if not citations:
            errors.append("No citations found in response")
        if unsupported:
            errors.append(f"{len(unsupported)} factual claims lack citation support")

        return GateResult(
            enabled=True,
            passed=bool(citations) and not unsupported,
            score=score,
            details={
                "total_claims": len(claims),
                "cited_claims": cited_claims,
                "uncited_claims": len(unsupported),
                "invalid_citations": validate_all_citations(text)["invalid_citations"],
                "unsupported_sentences": unsupported,
            },
            errors=errors,
        )

    def run_math_check(self, draft: DraftAnswer, mode: TaskMode) -> GateResult:
        if mode not in MATH_MODES:
            return disabled_gate()

        text = draft.raw_text
        formulas = extract_formulas_with_units(text)
        unit_check = verify_unit_consistency(text)
        sig_fig_check = verify_sig_figs(text)

        errors = list(unit_check.errors)
        if not sig_fig_check.consistent:
            errors.append(sig_fig_check.message)
        passed = unit_check.consistent and sig_fig_check.consistent

        return GateResult(
            enabled=True,
            passed=passed,
            score=1.0 if passed else 0.5,
            details={
                "formulas_found": len(formulas),
                "unit_consistency": unit_check.consistent,
                "sig_figs_consistent": sig_fig_check.consistent,
                "unit_errors": unit_check.errors,
            },
            errors=errors,
        )

    def run_language_check(self, draft: DraftAnswer, target_language: DetectedLanguage) -> GateResult:
        text = draft.raw_text
        detected, _ = detect_draft_language(text)
        leakage = detect_cot_leakage(text)
        formula_check = check_formulas_in_english(text)

        errors: List[str] = []
        if leakage.has_leakage:
            errors.append(f"Chain-of-thought leakage detected: {', '.join(leakage.markers_found)}")
        if not formula_check.all_english:
            errors.append(f"Formulas contain non-English terms: {', '.join(formula_check.non_english_formulas)}")

        language_match = detected == target_language or detected == "mixed"
        score = 0.5
        if language_match:
            score += 0.2
        if formula_check.all_english:
            score += 0.2
        if not leakage.has_leakage:
            score += 0.1

        return GateResult(
            enabled=True,
            passed=language_match and formula_check.all_english and not leakage.has_leakage,
            score=round(score, 2),
            details={
                "target_language": target_language,
                "detected_language": detected,
                "language_match": language_match,
                "formulas_in_english": formula_check.all_english,
                "has_cot_leakage": leakage.has_leakage,
                "cot_markers_found": leakage.markers_found,
                "non_english_formulas": formula_check.non_english_formulas,
            },
            errors=errors,
        )

    def regeneration_strategy(
        self,
        attempt_number: int,
        fact_check: GateResult,
        math_check: GateResult,
        language_check: GateResult,
    ) -> RegenerationStrategy:
        if attempt_number >= MAX_REGENERATIONS:
            return RegenerationStrategy(attempt_number=attempt_number + 1, action=RegenerationAction.ESCALATE)
        if attempt_number == 0:
            return RegenerationStrategy(
                attempt_number=1,
                action=RegenerationAction.TIGHTEN,
                tightened_instructions=tightened_instructions(fact_check, math_check, language_check),
            )
        return RegenerationStrategy(
            attempt_number=2,
            action=RegenerationAction.SWITCH_AND_TIGHTEN,
            switch_model=True,
            suggested_model=self.strict_fallback_model,
            tightened_instructions=tightened_instructions(fact_check, math_check, language_check, strict=True),
        )


def tightened_instructions(
    fact_check: GateResult,
    math_check: GateResult,
    language_check: GateResult,
    strict: bool = False,
) -> str:
    issues: List[str] = []
    if not fact_check.passed:
        issues.append("- Every factual claim MUST have [NCERT:doc_id:section] or [PYQ:exam:year:slot:qid] citation")
        issues.append("- If no evidence available, say 'I don't have enough information'")
    if not math_check.passed:
        issues.append("- Show units in EVERY calculation step")
        issues.append("- Verify dimensional analysis")
        issues.append("- Maintain consistent significant figures")
    details = language_check.details
    if details.get("has_cot_leakage"):
        issues.append("- NO chain-of-thought in output (NO 'Let me think', 'First I will', etc.)")
        issues.append("- Output ONLY the final answer, no reasoning process")
    if not details.get("formulas_in_english", True):
        issues.append("- ALL formulas MUST be in English: F = ma (NEVER Hindi/Sanskrit terms)")
    if not details.get("language_match", True):
        issues.append(f"- Respond ONLY in {details.get('target_language')}")

    body = "\n".join(issues)
    if strict:
        return f"CRITICAL RULES (STRICT MODE):\n{body}\n\nVIOLATION OF ANY RULE WILL RESULT IN REJECTION."
    return f"ADDITIONAL CONSTRAINTS:\n{body}"
