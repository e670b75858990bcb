import pytest

from py_shared.citations import extract_citations
from services.orchestrator.gate import AcceptanceGate, calculate_confidence
from services.orchestrator.schemas import DraftAnswer, RegenerationAction

STRICT_MODEL = "claude-3.5-sonnet"


@pytest.fixture
def gate() -> AcceptanceGate:
    return AcceptanceGate(strict_fallback_model=STRICT_MODEL)


def _draft(text: str, mode: str = "explain") -> DraftAnswer:
    return DraftAnswer(raw_text=text, model_used="gpt-4o", mode=mode, extracted_citations=extract_citations(text))


CITED_EXPLANATION = "Inertia is the tendency of a body to resist change [NCERT:phy_9_ch9:sec_2]."


def test_explanation_without_citations_fails_fact_gate(gate: AcceptanceGate) -> None:
    draft = _draft("Newton's second law states that force equals mass times acceleration.")
    report = gate.verify(draft, "english", "explain", 0)
    fact = report.gates.fact_check
    assert fact.enabled is True
    assert fact.passed is False
    assert "No citations found in response" in fact.errors
    assert report.overall_pass is False
    assert report.should_regenerate is True


def test_worked_solution_passes_math_gate(gate: AcceptanceGate) -> None:
    draft = _draft("v = u + a * t. With u = 5 m/s, a = 2 m/s^2 and t = 3 s, v = 11 m/s.", mode="solve")
    report = gate.verify(draft, "english", "solve", 0)
    assert report.gates.math_check.passed is True
    assert report.gates.math_check.score == 1.0
    assert report.gates.fact_check.enabled is False
    assert report.overall_pass is True
    assert report.confidence_score == 1.0
    assert report.regeneration_strategy.action == RegenerationAction.NONE


def test_mixed_units_fail_math_gate(gate: AcceptanceGate) -> None:
    report = gate.verify(_draft("The car moves at 36 km/h which is 10 m/s.", "solve"), "english", "solve", 0)
    math = report.gates.math_check
    assert math.passed is False
    assert math.score == 0.5
    assert report.confidence_score == pytest.approx(0.75)
    assert report.overall_pass is False


def test_language_mismatch_alone_fails_language_gate(gate: AcceptanceGate) -> None:
    report = gate.verify(_draft(CITED_EXPLANATION), "hindi", "explain", 0)
    language = report.gates.language_check
    assert report.gates.fact_check.passed is True
    assert language.passed is False
    assert language.errors == []
    assert language.details["detected_language"] == "english"
    assert language.details["language_match"] is False
    assert language.details["formulas_in_english"] is True
    assert language.details["has_cot_leakage"] is False
    assert language.score == pytest.approx(0.8)
    assert report.overall_pass is False


def test_chain_of_thought_is_rejected(gate: AcceptanceGate) -> None:
    report = gate.verify(_draft("Let me think about this. " + CITED_EXPLANATION), "english", "explain", 0)
    language = report.gates.language_check
    assert language.passed is False
    assert language.details["cot_markers_found"] == ["let me think"]
    assert "NO chain-of-thought" in (report.regeneration_strategy.tightened_instructions or "")


def test_hindi_terms_in_formula_fail_language_gate(gate: AcceptanceGate) -> None:
    report = gate.verify(_draft("F = बल * a", "solve"), "english", "solve", 0)
    language = report.gates.language_check
    assert language.details["formulas_in_english"] is False
    assert language.passed is False
    assert "ALL formulas MUST be in English" in (report.regeneration_strategy.tightened_instructions or "")


def test_uncited_claim_lowers_fact_score(gate: AcceptanceGate) -> None:
    text = "Inertia is resistance to change [NCERT:phy_9_ch9:sec_1]. Momentum is mass times velocity."
    fact = gate.verify(_draft(text), "english", "explain", 0).gates.fact_check
    assert fact.passed is False
    assert fact.score == pytest.approx(0.5)
    assert fact.details["uncited_claims"] == 1
    assert "1 factual claims lack citation support" in fact.errors


def test_confidence_is_reproducible_from_gate_scores(gate: AcceptanceGate) -> None:
    report = gate.verify(_draft(CITED_EXPLANATION), "hindi", "explain", 0)
    gates = report.gates
    expected = round((gates.fact_check.score * 0.4 + gates.language_check.score * 0.3) / 0.7, 2)
    assert report.confidence_score == expected
    assert calculate_confidence(gates.fact_check, gates.math_check, gates.language_check) == expected
    assert 0.0 <= report.confidence_score <= 1.0


def test_verification_is_idempotent(gate: AcceptanceGate) -> None:
    draft = _draft("Momentum is mass times velocity.")
    assert gate.verify(draft, "english", "explain", 1) == gate.verify(draft, "english", "explain", 1)


def test_first_failure_tightens_constraints(gate: AcceptanceGate) -> None:
    strategy = gate.verify(_draft("Momentum is mass times velocity."), "english", "explain", 0).regeneration_strategy
    assert strategy.action == RegenerationAction.TIGHTEN
    assert strategy.attempt_number == 1
    assert strategy.switch_model is False
    assert strategy.tightened_instructions is not None
    assert strategy.tightened_instructions.startswith("ADDITIONAL CONSTRAINTS:\n")
    assert "[NCERT:doc_id:section]" in strategy.tightened_instructions


def test_second_failure_switches_model_in_strict_mode(gate: AcceptanceGate) -> None:
    strategy = gate.verify(_draft("Momentum is mass times velocity."), "english", "explain", 1).regeneration_strategy
    assert strategy.action == RegenerationAction.SWITCH_AND_TIGHTEN
    assert strategy.switch_model is True
    assert strategy.suggested_model == STRICT_MODEL
    assert strategy.tightened_instructions is not None
    assert strategy.tightened_instructions.startswith("CRITICAL RULES (STRICT MODE):")
    assert strategy.tightened_instructions.endswith("VIOLATION OF ANY RULE WILL RESULT IN REJECTION.")


def test_exhausted_attempts_escalate(gate: AcceptanceGate) -> None:
    strategy = gate.verify(_draft("Momentum is mass times velocity."), "english", "explain", 2).regeneration_strategy
    assert strategy.action == RegenerationAction.ESCALATE
    assert strategy.attempt_number == 3
    assert strategy.switch_model is False
    assert strategy.tightened_instructions is None


def test_overly_precise_small_answer_fails_math_gate(gate: AcceptanceGate) -> None:
    math = gate.verify(_draft("Using t = 2 s, x = 0.00005 m", "solve"), "english", "solve", 0).gates.math_check
    assert math.passed is False
    assert math.details["sig_figs_consistent"] is False
