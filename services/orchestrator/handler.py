"""Orchestrator: detect, route, retrieve, prompt, then generate and verify."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Union

from pydantic import ValidationError

from py_shared import metrics
from py_shared.citations import extract_citations

from .answers import build_answer
from .gate import AUTO_REGENERATE_BELOW, MAX_REGENERATIONS, AcceptanceGate
from .llm_client import GenerationService, MockGenerationService, build_generation_service
from .planner import ToolPlanner
from .prompts import DefaultPromptBuilder
from .rag import build_retrieval_service
from .router import Router
from .schemas import (
    DetectedLanguage,
    DraftAnswer,
    ErrorCode,
    EvidencePack,
    OrchestratorError,
    OrchestratorResult,
    OrchestratorTask,
    PromptBuilderOutput,
    RouterDecision,
    RunMetadata,
    VerifierReport,
)
from .sessions import LanguageSessionStore
from .settings import Settings, get_settings
from .units import extract_formulas_with_units

logger = logging.getLogger("uvicorn.error")

TaskInput = Union[OrchestratorTask, Mapping[str, Any]]
GATE_FAILURE_REASONS = {"fact_check": "fact_unsupported", "math_check": "math_fail", "language_check": "lang_mismatch"}


class PromptBuilder(Protocol):
    def build(self, task: OrchestratorTask, evidence: EvidencePack, language: DetectedLanguage) -> PromptBuilderOutput:
        ...


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "task"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


def validate_task(task: TaskInput) -> Tuple[Optional[OrchestratorTask], Optional[str]]:
    """Return the parsed task, or None and a message describing what is wrong."""
    if isinstance(task, OrchestratorTask):
        parsed = task
    else:
        try:
            parsed = OrchestratorTask.model_validate(task)
        except ValidationError as exc:
            return None, _format_validation_error(exc)
    if not parsed.user_msg.strip():
        return None, "user_msg is required and must not be blank"
    return parsed, None


def regeneration_reasons(report: VerifierReport) -> List[str]:
    gates = report.gates
    reasons = []
    if not gates.fact_check.passed:
        reasons.append("fact_unsupported")
    if not gates.math_check.passed:
        reasons.append("math_fail")
    if not gates.language_check.passed:
        reasons.append("lang_mismatch")
    if report.confidence_score < AUTO_REGENERATE_BELOW:
        reasons.append("low_conf")
    return reasons


def next_model(decision: RouterDecision, regeneration_count: int, current_model: str) -> str:
    """Fallback for this regeneration, or the current model once the chain runs out."""
    fallback = Router.get_next_fallback(decision, regeneration_count)
    if fallback:
        return fallback
    logger.warning("Fallback models exhausted, keeping %s", current_model)
    return current_model


class Orchestrator:
    """Runs one task end to end. Never raises; every outcome is an OrchestratorResult."""

    def __init__(
        self,
        generation: Optional[GenerationService] = None,
        planner: Optional[ToolPlanner] = None,
        router: Optional[Router] = None,
        gate: Optional[AcceptanceGate] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        sessions: Optional[LanguageSessionStore] = None,
        run_timeout_s: Optional[float] = None,
    ) -> None:
        self.generation: GenerationService = generation if generation is not None else MockGenerationService()
        self.planner = planner if planner is not None else ToolPlanner()
        self.router = router if router is not None else Router()
        self.gate = gate if gate is not None else AcceptanceGate()
        self.prompt_builder: PromptBuilder = (
            prompt_builder if prompt_builder is not None else DefaultPromptBuilder()
        )
        self.sessions = sessions if sessions is not None else LanguageSessionStore()
        self.run_timeout_s = run_timeout_s

    async def run(self, task: TaskInput, timeout_s: Optional[float] = None) -> OrchestratorResult:
        started = time.perf_counter()
        parsed, problem = validate_task(task)
        if parsed is None:
            logger.warning("Rejected invalid task: %s", problem)
            return self._error_result("INVALID_INPUT", problem or "invalid task", started)

        logger.info(
            "Starting orchestrator (mode=%s, subject=%s, class=%s)", parsed.mode, parsed.subject, parsed.grade
        )
        deadline = timeout_s if timeout_s is not None else self.run_timeout_s
        metrics.active_requests.labels(mode=parsed.mode).inc()
        try:
            return await asyncio.wait_for(self._run(parsed, started), timeout=deadline)
        except asyncio.TimeoutError:
            logger.error("Orchestration timed out (deadline=%s)", deadline)
            return self._error_result(
                "ORCHESTRATION_ERROR", f"Run timed out (deadline={deadline}s)", started, parsed
            )
        except Exception as exc:
            logger.error("Orchestration failed: %r", exc)
            return self._error_result("ORCHESTRATION_ERROR", str(exc) or exc.__class__.__name__, started, parsed)
        finally:
            metrics.active_requests.labels(mode=parsed.mode).dec()

    async def _run(self, task: OrchestratorTask, started: float) -> OrchestratorResult:
        detection = self.sessions.get(task.session_id).detect(task.user_msg, task.lang)
        target_language: DetectedLanguage = detection.label if detection.should_switch else "english"
        metrics.record_language_detection(detection.label, detection.should_switch, detection.confidence)
        logger.info(
            "Language detected: %s (confidence=%.2f, target=%s)",
            detection.label,
            detection.confidence,
            target_language,
        )

        decision = self.router.route(task)
        logger.info("Model selected: %s (rule=%s)", decision.selected_model, decision.matched_rule)

        evidence = await self.planner.execute_plan(task)
        metrics.record_retrieval(task.mode, task.subject, evidence.total_retrieved, evidence.avg_similarity)

        prompt = self.prompt_builder.build(task, evidence, target_language)

        regeneration_count = 0
        current_model = decision.selected_model
        while regeneration_count <= MAX_REGENERATIONS:
            draft = await self._generate(task, prompt, current_model, decision, attempt=regeneration_count + 1)
            report = self.gate.verify(draft, target_language, task.mode, regeneration_count)
            if report.overall_pass:
                break
            if not report.should_regenerate or regeneration_count >= MAX_REGENERATIONS:
                break

            regeneration_count += 1
            self._record_failure(task, report)
            strategy = report.regeneration_strategy
            if strategy.switch_model:
                previous_model = current_model
                current_model = next_model(decision, regeneration_count, current_model)
                logger.info("Switching model %s -> %s", previous_model, current_model)
            if strategy.tightened_instructions:
                prompt = prompt.with_instructions(strategy.tightened_instructions)

        latency_ms = self._elapsed_ms(started)
        metadata = RunMetadata(
            total_latency_ms=latency_ms,
            model_used=current_model,
            regeneration_count=regeneration_count,
            language_detected=target_language,
            confidence_score=report.confidence_score,
        )

        if not report.overall_pass:
            metrics.record_response(
                task.mode,
                task.subject,
                target_language,
                current_model,
                report.confidence_score,
                regeneration_count,
                latency_ms,
                passed=False,
            )
            if regeneration_count >= MAX_REGENERATIONS:
                code: ErrorCode = "MAX_REGENERATIONS_EXCEEDED"
                message = (
                    f"Failed to generate acceptable answer after {MAX_REGENERATIONS} regenerations. "
                    f"Last confidence: {report.confidence_score}"
                )
            else:
                code = "VERIFICATION_FAILED"
                message = f"Answer did not pass verification gates. Confidence: {report.confidence_score}"
            logger.warning("Orchestration failed with %s (regenerations=%d)", code, regeneration_count)
            return OrchestratorResult(
                success=False,
                error=OrchestratorError(code=code, message=message, details={"gate_errors": _gate_errors(report)}),
                metadata=metadata,
            )

        answer = build_answer(task, draft, report, evidence, target_language, regeneration_count, latency_ms)
        fact_passed = report.gates.fact_check.passed
        metrics.record_citation_validation(
            task.mode, task.subject, fact_passed, None if fact_passed else "missing_or_invalid"
        )
        metrics.record_response(
            task.mode,
            task.subject,
            target_language,
            current_model,
            report.confidence_score,
            regeneration_count,
            latency_ms,
        )
        logger.info(
            "Orchestration complete (latency_ms=%.1f, regenerations=%d, confidence=%.2f)",
            latency_ms,
            regeneration_count,
            report.confidence_score,
        )
        return OrchestratorResult(success=True, answer=answer, metadata=metadata)

    async def _generate(
        self,
        task: OrchestratorTask,
        prompt: PromptBuilderOutput,
        model: str,
        decision: RouterDecision,
        attempt: int,
    ) -> DraftAnswer:
        logger.debug("Generating draft (model=%s, attempt=%d)", model, attempt)
        response = await self.generation.generate(prompt.messages, model, decision.temperature, decision.max_tokens)
        metrics.record_model_call(
            model,
            attempt,
            response.latency_ms,
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
        )
        return DraftAnswer(
            raw_text=response.text,
            model_used=model,
            mode=task.mode,
            usage=response.usage,
            latency_ms=response.latency_ms,
            extracted_citations=extract_citations(response.text),
            extracted_formulas=extract_formulas_with_units(response.text),
            metadata={
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "temperature": decision.temperature,
                "max_tokens": decision.max_tokens,
                "attempt": attempt,
            },
        )

    def _record_failure(self, task: OrchestratorTask, report: VerifierReport) -> None:
        for reason in regeneration_reasons(report):
            metrics.record_regeneration(task.mode, reason)
        for name, gate in report.gates:
            if not gate.passed:
                metrics.record_gate_failure(name, GATE_FAILURE_REASONS[name])
        logger.info(
            "Regenerating (confidence=%.2f, action=%s)",
            report.confidence_score,
            report.regeneration_strategy.action.value,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 1)

    def _error_result(
        self, code: ErrorCode, message: str, started: float, task: Optional[OrchestratorTask] = None
    ) -> OrchestratorResult:
        latency_ms = self._elapsed_ms(started)
        metrics.record_response(
            task.mode if task else "",
            task.subject if task else "",
            "",
            "",
            None,
            0,
            latency_ms,
            passed=False,
        )
        return OrchestratorResult(
            success=False,
            error=OrchestratorError(code=code, message=message),
            metadata=RunMetadata(total_latency_ms=latency_ms),
        )


def _gate_errors(report: VerifierReport) -> Dict[str, List[str]]:
    return {name: list(gate.errors) for name, gate in report.gates if gate.errors}


def build_orchestrator(settings: Optional[Settings] = None) -> Orchestrator:
    settings = settings or get_settings()
    planner = ToolPlanner(
        retrieval=build_retrieval_service(settings),
        top_k=settings.retrieval_top_k,
        timeout_s=settings.request_timeout_s,
        mock_evidence=settings.mock_evidence,
    )
    return Orchestrator(
        generation=build_generation_service(settings),
        planner=planner,
        router=Router(default_model=settings.default_model),
        gate=AcceptanceGate(strict_fallback_model=settings.strict_fallback_model),
        sessions=LanguageSessionStore(settings.max_sessions),
        run_timeout_s=settings.run_timeout_s,
    )
