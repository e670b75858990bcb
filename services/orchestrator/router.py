"""Rule-based model routing with ordered fallbacks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from .schemas import OrchestratorTask, RouterDecision
from .settings import get_settings

logger = logging.getLogger("uvicorn.error")

TEMPERATURE_BY_MODE: Dict[str, float] = {
    "solve": 0.0,
    "derive": 0.0,
    "explain": 0.15,
    "revise": 0.15,
    "docchat": 0.1,
    "strategy": 0.2,
    "plan": 0.15,
}

MAX_TOKENS_BY_MODE: Dict[str, int] = {
    "solve": 1500,
    "derive": 2000,
    "explain": 2500,
    "revise": 2000,
    "docchat": 1200,
    "strategy": 2500,
    "plan": 3000,
}

DEFAULT_FALLBACKS: Tuple[str, ...] = ("claude-3.5-sonnet", "gemini-1.5-pro")


@dataclass(frozen=True)
class RoutingRule:
    name: str
    condition: Callable[[OrchestratorTask], bool]
    priority_order: Tuple[str, ...]
    rationale: str


def is_numeric_heavy(task: OrchestratorTask) -> bool:
    return (task.signals.numeric or task.mode in ("solve", "derive")) and not task.signals.safety_critical


def is_safety_pedagogy(task: OrchestratorTask) -> bool:
    return task.mode in ("explain", "revise", "strategy") and (
        task.signals.safety_critical or task.subject in ("Biology", "Chemistry")
    )


def is_docchat(task: OrchestratorTask) -> bool:
    return task.mode == "docchat"


def is_planning(task: OrchestratorTask) -> bool:
    return task.mode in ("plan", "strategy")


ROUTING_RULES: Tuple[RoutingRule, ...] = (
    RoutingRule(
        name="numeric_heavy",
        condition=is_numeric_heavy,
        priority_order=("grok-2-math", "claude-3.5-sonnet", "gpt-4o"),
        rationale="Mathematical computation requires specialized reasoning",
    ),
    RoutingRule(
        name="pedagogy_safety",
        condition=is_safety_pedagogy,
        priority_order=("claude-3.5-sonnet", "gpt-4o", "gemini-1.5-pro"),
        rationale="Pedagogical content requires careful, safe explanations",
    ),
    RoutingRule(
        name="fast_docchat",
        condition=is_docchat,
        priority_order=("gemini-1.5-flash", "gpt-4o-mini", "gpt-4o"),
        rationale="Document chat prioritizes speed and cost-effectiveness",
    ),
    RoutingRule(
        name="planning",
        condition=is_planning,
        priority_order=("claude-3.5-sonnet", "gpt-4o", "gemini-1.5-pro"),
        rationale="Planning requires structured, logical thinking",
    ),
)


class Router:
    """First matching rule wins; no match falls through to the default model."""

    def __init__(
        self,
        rules: Sequence[RoutingRule] = ROUTING_RULES,
        default_model: Optional[str] = None,
        default_fallbacks: Sequence[str] = DEFAULT_FALLBACKS,
    ) -> None:
        self.rules = tuple(rules)
        self.default_model = default_model or get_settings().default_model
        self.default_fallbacks = tuple(default_fallbacks)

    def route(self, task: OrchestratorTask) -> RouterDecision:
        logger.debug("Routing task (mode=%s, subject=%s, signals=%s)", task.mode, task.subject, task.signals)
        temperature = TEMPERATURE_BY_MODE[task.mode]
        max_tokens = MAX_TOKENS_BY_MODE[task.mode]
        for rule in self.rules:
            if not rule.condition(task):
                continue
            logger.info("Matched routing rule %s", rule.name)
            return RouterDecision(
                selected_model=rule.priority_order[0],
                fallback_models=list(rule.priority_order[1:]),
                temperature=temperature,
                max_tokens=max_tokens,
                rationale=rule.rationale,
                matched_rule=rule.name,
                routing_signals={
                    "numeric": task.signals.numeric,
                    "safety_critical": task.signals.safety_critical,
                    "requires_speed": task.mode == "docchat",
                },
            )

        logger.warning("No routing rule matched for mode=%s, using default model", task.mode)
        return RouterDecision(
            selected_model=self.default_model,
            fallback_models=list(self.default_fallbacks),
            temperature=temperature,
            max_tokens=max_tokens,
            rationale="Default routing - no specific rule matched",
            matched_rule="default",
        )

    @staticmethod
    def get_next_fallback(decision: RouterDecision, attempt_number: int) -> Optional[str]:
        """Fallback model for the given 1-based attempt, or None once exhausted."""
        index = attempt_number - 1
        if index < 0 or index >= len(decision.fallback_models):
            return None
        return decision.fallback_models[index]
