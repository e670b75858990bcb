"""Surface checks on generated drafts: leaked reasoning and factual claims."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

# Phrases that reveal the model's reasoning process instead of the answer.
COT_MARKERS = (
    "let me think",
    "first, i will",
    "first i will",
    "step 1:",
    "my approach",
    "i need to",
    "i should",
    "let's think",
    "let me analyze",
    "thinking about this",
    "first, we need to",
    "before answering",
)

CONVERSATIONAL_MARKERS = ("samajh me aaya", "kuch aur", "dekho,")
CLAIM_MARKERS = (" is ", " are ", "hai", "hota hai", "states that", "law", "formula")

_SENTENCE_SPLIT_RE = re.compile(r"[.!?\n]+")


@dataclass(frozen=True)
class LeakageCheck:
    has_leakage: bool
    markers_found: List[str] = field(default_factory=list)


def detect_cot_leakage(text: str) -> LeakageCheck:
    lowered = text.lower()
    found = [marker for marker in COT_MARKERS if marker in lowered]
    return LeakageCheck(has_leakage=bool(found), markers_found=found)


def extract_factual_claims(text: str) -> List[str]:
    """Declarative sentences that read like statements of fact."""
    claims: List[str] = []
    for raw in _SENTENCE_SPLIT_RE.split(text):
        sentence = raw.strip()
        if not sentence or "?" in sentence:
            continue
        lowered = sentence.lower()
        if any(marker in lowered for marker in CONVERSATIONAL_MARKERS):
            continue
        if any(marker in lowered for marker in CLAIM_MARKERS) or (
            len(sentence) > 30 and not lowered.startswith("example")
        ):
            claims.append(sentence)
    return claims


def calculate_quality_score(
    *,
    has_citations: bool,
    citation_count: int,
    has_formulas: bool,
    has_cot_leakage: bool,
    language_match: bool,
) -> float:
    score = 0.5
    if has_citations:
        score += 0.2
        if citation_count >= 3:
            score += 0.1
    else:
        score -= 0.3
    if has_formulas:
        score += 0.1
    if has_cot_leakage:
        score -= 0.4
    score += 0.1 if language_match else -0.2
    return round(max(0.0, min(1.0, score)), 2)
