"""Shared data models for the orchestrator."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

TaskMode = Literal["explain", "solve", "derive", "revise", "docchat", "strategy", "plan"]
AnswerMode = Literal["explain", "solve", "derive", "revise", "docchat", "strategy"]
Subject = Literal["Physics", "Chemistry", "Biology", "Mathematics", "General"]
Board = Literal["CBSE", "ICSE", "State", "JEE", "NEET"]
RequestedLanguage = Literal["en", "hi", "hinglish", "auto"]
DetectedLanguage = Literal["english", "hindi", "hinglish"]
DraftLanguage = Literal["english", "hindi", "hinglish", "mixed"]
ScriptType = Literal["latin", "devanagari", "mixed"]
ErrorCode = Literal["INVALID_INPUT", "VERIFICATION_FAILED", "MAX_REGENERATIONS_EXCEEDED", "ORCHESTRATION_ERROR"]

TASK_MODES: tuple[str, ...] = ("explain", "solve", "derive", "revise", "docchat", "strategy", "plan")
MATH_MODES: tuple[str, ...] = ("solve", "derive")


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class TaskContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    conversation_history: List[ConversationTurn] = Field(default_factory=list)
    doc_ids: List[str] = Field(default_factory=list)
    chapter: Optional[str] = None


class TaskSignals(BaseModel):
    model_config = ConfigDict(frozen=True)

    numeric: bool = False
    safety_critical: bool = False
    requires_images: bool = False
    complexity: Optional[Literal["low", "medium", "high"]] = None


class TaskSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: Optional[str] = None


class OrchestratorTask(BaseModel):
    """Immutable student request. ``grade`` travels as ``class`` on the wire."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_msg: str = Field(min_length=1)
    mode: TaskMode
    subject: Subject
    board: Board
    grade: int = Field(alias="class", ge=6, le=12)
    exam: Optional[str] = None
    lang: Optional[RequestedLanguage] = None
    context: TaskContext = Field(default_factory=TaskContext)
    signals: TaskSignals = Field(default_factory=TaskSignals)
    session: Optional[TaskSession] = None

    @property
    def session_id(self) -> Optional[str]:
        return self.session.session_id if self.session else None


class LanguageDetectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: DetectedLanguage
    confidence: float = Field(ge=0.0, le=1.0)
    should_switch: bool
    script: Optional[ScriptType] = None
    char_count: int = 0
    detected_from: str = ""
    metadata: Dict[str, float] = Field(default_factory=dict)


class RouterDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    selected_model: str
    fallback_models: List[str] = Field(default_factory=list)
    temperature: float = Field(ge=0.0, le=1.0)
    max_tokens: int = Field(gt=0)
    rationale: str
    matched_rule: str
    routing_signals: Dict[str, bool] = Field(default_factory=dict)


class EvidenceChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk_id: str
    text: str
    citation: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    similarity_score: float = Field(ge=0.0, le=1.0)


class EvidencePack(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunks: List[EvidenceChunk] = Field(default_factory=list)
    total_retrieved: int = 0
    retrieval_query: str = ""
    filters_applied: Dict[str, Any] = Field(default_factory=dict)
    has_sufficient_evidence: bool = False
    avg_similarity: float = 0.0

    def find(self, citation: str) -> Optional[EvidenceChunk]:
        for chunk in self.chunks:
            if chunk.citation == citation:
                return chunk
        return None


class PromptMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class PromptBuilderOutput(BaseModel):
    """Ready-to-send message list plus the bookkeeping the builder derived."""

    system_prompt: str
    user_prompt: str
    messages: List[PromptMessage]
    mode: TaskMode
    language: DetectedLanguage
    evidence_included: bool = False
    evidence_summary: Dict[str, Any] = Field(default_factory=dict)
    tools_declared: List[str] = Field(default_factory=list)
    constraints: Dict[str, bool] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def with_instructions(self, instructions: str) -> "PromptBuilderOutput":
        """Return a copy whose system prompt (and system message) ends with ``instructions``."""
        system_prompt = f"{self.system_prompt}\n\n{instructions}"
        messages = [
            PromptMessage(role="system", content=system_prompt) if message.role == "system" else message
            for message in self.messages
        ]
        return self.model_copy(update={"system_prompt": system_prompt, "messages": messages})


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class GenerationResponse(BaseModel):
    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    latency_ms: float = 0.0


class DraftAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw_text: str
    model_used: str
    mode: TaskMode
    usage: TokenUsage = Field(default_factory=TokenUsage)
    latency_ms: float = 0.0
    extracted_citations: List[str] = Field(default_factory=list)
    extracted_formulas: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GateResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool
    passed: bool
    score: float = Field(ge=0.0, le=1.0)
    details: Dict[str, Any] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)


class VerifierGates(BaseModel):
    model_config = ConfigDict(frozen=True)

    fact_check: GateResult
    math_check: GateResult
    language_check: GateResult


class RegenerationAction(str, Enum):
    NONE = "none"
    TIGHTEN = "tighten_constraints"
    SWITCH_AND_TIGHTEN = "switch_model_and_tighten"
    ESCALATE = "escalate"


class RegenerationStrategy(BaseModel):
    model_config = ConfigDict(frozen=True)

    attempt_number: int = 0
    action: RegenerationAction = RegenerationAction.NONE
    switch_model: bool = False
    suggested_model: Optional[str] = None
    tightened_instructions: Optional[str] = None


class VerifierReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_pass: bool
    confidence_score: float = Field(ge=0.0, le=1.0)
    should_regenerate: bool
    gates: VerifierGates
    regeneration_strategy: RegenerationStrategy = Field(default_factory=RegenerationStrategy)


class Citation(BaseModel):
    citation_id: str
    doc_title: Optional[str] = None
    page: Optional[int] = None
    excerpt: Optional[str] = None


class VerificationSummary(BaseModel):
    fact_check_passed: bool
    math_check_passed: bool
    language_check_passed: bool
    regeneration_count: int = Field(default=0, ge=0)


class FinalAnswer(BaseModel):
    answer_text: str
    mode: AnswerMode
    language: DetectedLanguage
    confidence: float
    citations: List[Citation] = Field(default_factory=list)
    formulas: List[str] = Field(default_factory=list)
    key_concepts: List[str] = Field(default_factory=list)
    verification_summary: VerificationSummary
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TopicResource(BaseModel):
    type: Literal["NCERT", "PYQ", "Reference Book", "Video", "Notes"]
    reference: str


class Topic(BaseModel):
    topic_name: str
    chapter: Optional[str] = None
    estimated_hours: float = Field(ge=0.0)
    priority: Literal["high", "medium", "low"] = "medium"
    weightage: Optional[float] = None
    resources: List[TopicResource] = Field(default_factory=list)
    practice_problems: Optional[int] = None


class Phase(BaseModel):
    phase_number: int = Field(ge=1)
    phase_name: str
    duration_days: int = Field(ge=0)
    goals: List[str] = Field(default_factory=list)
    topics: List[Topic] = Field(default_factory=list)
    milestones: List[str] = Field(default_factory=list)


class PlanDuration(BaseModel):
    total_days: int = Field(default=30, gt=0)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    daily_study_hours: float = Field(default=3, gt=0)


class RevisionCycle(BaseModel):
    cycle_number: int
    timing: str
    duration_hours: Optional[float] = None
    focus: Optional[str] = None


class RevisionSchedule(BaseModel):
    cycles: List[RevisionCycle] = Field(default_factory=list)
    strategy: Optional[str] = None


class PlanAnswer(BaseModel):
    plan_title: str
    mode: Literal["plan"] = "plan"
    language: DetectedLanguage
    duration: PlanDuration = Field(default_factory=PlanDuration)
    phases: List[Phase] = Field(default_factory=list)
    revision_schedule: Optional[RevisionSchedule] = None
    tips_and_strategy: List[str] = Field(default_factory=list)
    confidence: float
    citations: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


Answer = Union[FinalAnswer, PlanAnswer]


class OrchestratorError(BaseModel):
    code: ErrorCode
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class RunMetadata(BaseModel):
    total_latency_ms: float = 0.0
    model_used: str = "none"
    regeneration_count: int = Field(default=0, ge=0, le=2)
    language_detected: DetectedLanguage = "english"
    confidence_score: float = 0.0


class OrchestratorResult(BaseModel):
    """Tagged result: an answer on success, an error otherwise, never both."""

    success: bool
    answer: Optional[Answer] = None
    error: Optional[OrchestratorError] = None
    metadata: RunMetadata = Field(default_factory=RunMetadata)

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "OrchestratorResult":
        if self.success and (self.answer is None or self.error is not None):
            raise ValueError("successful results carry an answer and no error")
        if not self.success and (self.error is None or self.answer is not None):
            raise ValueError("failed results carry an error and no answer")
        return self
