"""Shared Prometheus metrics for the tutor orchestration pipeline."""
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

DEFAULT_LABEL = "unknown"

responses_total = Counter(
    "tutor_responses_total",
    "Total orchestrator responses",
    labelnames=("mode", "subject", "lang", "model", "status"),
)
confidence_hist = Histogram(
    "tutor_confidence",
    "Final confidence distribution",
    labelnames=("mode", "subject", "model"),
    buckets=(0.5, 0.6, 0.7, 0.75, 0.8, 0.82, 0.85, 0.9, 0.95, 1.0),
)
regenerations_total = Counter(
    "tutor_regenerations_total",
    "Count of regenerations triggered",
    labelnames=("mode", "reason"),
)
language_detect_total = Counter(
    "tutor_language_detect_total",
    "Language detection outcomes",
    labelnames=("detected", "switched", "conf_bucket"),
)
e2e_latency_ms = Histogram(
    "tutor_e2e_latency_ms",
    "End-to-end latency in milliseconds",
    labelnames=("mode", "model"),
    buckets=(400, 700, 1000, 1500, 1700, 2000, 2500, 3000, 3500, 4200, 6000),
)
citations_ok_total = Counter(
    "tutor_citations_ok_total",
    "Answers with valid citation coverage",
    labelnames=("mode", "subject"),
)
citations_fail_total = Counter(
    "tutor_citations_fail_total",
    "Answers missing or invalid citations",
    labelnames=("mode", "subject", "reason"),
)
rag_chunks_retrieved = Histogram(
    "tutor_rag_chunks_retrieved",
    "Number of chunks retrieved from RAG",
    labelnames=("mode", "subject"),
    buckets=(0, 1, 2, 3, 4, 5, 6, 8, 10, 15, 20),
)
rag_avg_similarity = Histogram(
    "tutor_rag_avg_similarity",
    "Average similarity score of retrieved chunks",
    labelnames=("mode", "subject"),
    buckets=(0.0, 0.3, 0.5, 0.6, 0.7, 0.75, 0.8, 0.85, 0.9, 0.95, 1.0),
)
model_calls_total = Counter(
    "tutor_model_calls_total",
    "LLM calls by model and attempt",
    labelnames=("model", "attempt"),
)
model_latency_ms = Histogram(
    "tutor_model_latency_ms",
    "LLM response latency in milliseconds",
    labelnames=("model",),
    buckets=(500, 1000, 1500, 2000, 2500, 3000, 4000, 5000, 7000, 10000),
)
tokens_total = Counter(
    "tutor_tokens_total",
    "Total tokens consumed",
    labelnames=("model", "type"),
)
gate_failures_total = Counter(
    "tutor_gate_failures_total",
    "Verification gate failures",
    labelnames=("gate", "reason"),
)
active_requests = Gauge(
    "tutor_active_requests",
    "Requests currently being orchestrated",
    labelnames=("mode",),
)


def record_response(
    mode: str,
    subject: str,
    lang: str,
    model: str,
    confidence: Optional[float],
    regenerations: int,
    latency_ms: float,
    passed: bool = True,
) -> None:
    """Record a finished run; status is ok, regen or fail. Confidence is None when no gate ran."""
    if not passed:
        status = "fail"
    else:
        status = "ok" if regenerations == 0 else "regen"
    responses_total.labels(
        mode=_sanitize(mode), subject=_sanitize(subject), lang=_sanitize(lang), model=_sanitize(model), status=status
    ).inc()
    if confidence is not None:
        confidence_hist.labels(mode=_sanitize(mode), subject=_sanitize(subject), model=_sanitize(model)).observe(
            confidence
        )
    e2e_latency_ms.labels(mode=_sanitize(mode), model=_sanitize(model)).observe(latency_ms)


def record_regeneration(mode: str, reason: str) -> None:
    regenerations_total.labels(mode=_sanitize(mode), reason=_sanitize(reason)).inc()


def record_language_detection(detected: str, switched: bool, confidence: float) -> None:
    """Bucket the detection confidence and count the outcome."""
    if confidence < 0.6:
        bucket = "<0.6"
    elif confidence < 0.75:
        bucket = "0.6-0.75"
    else:
        bucket = ">=0.75"
    language_detect_total.labels(detected=_sanitize(detected), switched=str(switched).lower(), conf_bucket=bucket).inc()


def record_citation_validation(mode: str, subject: str, passed: bool, reason: Optional[str] = None) -> None:
    if passed:
        citations_ok_total.labels(mode=_sanitize(mode), subject=_sanitize(subject)).inc()
    else:
        citations_fail_total.labels(mode=_sanitize(mode), subject=_sanitize(subject), reason=_sanitize(reason)).inc()


def record_retrieval(mode: str, subject: str, chunk_count: int, avg_similarity: float) -> None:
    rag_chunks_retrieved.labels(mode=_sanitize(mode), subject=_sanitize(subject)).observe(chunk_count)
    rag_avg_similarity.labels(mode=_sanitize(mode), subject=_sanitize(subject)).observe(avg_similarity)


def record_model_call(model: str, attempt: int, latency_ms: float, prompt_tokens: int, completion_tokens: int) -> None:
    model_label = _sanitize(model)
    model_calls_total.labels(model=model_label, attempt=str(attempt)).inc()
    model_latency_ms.labels(model=model_label).observe(latency_ms)
    tokens_total.labels(model=model_label, type="prompt").inc(max(0, prompt_tokens))
    tokens_total.labels(model=model_label, type="completion").inc(max(0, completion_tokens))


def record_gate_failure(gate: str, reason: str) -> None:
    gate_failures_total.labels(gate=_sanitize(gate), reason=_sanitize(reason)).inc()


def _sanitize(value: Optional[str]) -> str:
    cleaned = (value or DEFAULT_LABEL).strip()
    return cleaned or DEFAULT_LABEL
