"""Citation grammar shared by the retrieval and orchestration services.

Two citation forms are recognised:

* ``NCERT:<doc_id>:<section>`` e.g. ``NCERT:phy_11_ch5:5.3``
* ``PYQ:<EXAM>:<YYYY>:<SLOT>:<qid>`` e.g. ``PYQ:JEE-MAIN:2023:APR:42``
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

NCERT_PATTERN = re.compile(r"NCERT:([a-zA-Z0-9_-]+):([a-zA-Z0-9._-]+)")
PYQ_PATTERN = re.compile(r"PYQ:([A-Z-]+):([0-9]{4}):(JAN|APR|MAY|JUN|SEP|OCT):([0-9]+)")

_NCERT_EXACT = re.compile(r"^NCERT:[a-zA-Z0-9_-]+:[a-zA-Z0-9._-]+$")
_PYQ_EXACT = re.compile(r"^PYQ:[A-Z-]+:[0-9]{4}:(JAN|APR|MAY|JUN|SEP|OCT):[0-9]+$")

# Sentences containing any of these are conversational, not claims.
CONVERSATIONAL_MARKERS = (
    "samajh me aaya",
    "dekho",
    "basically",
    "example:",
    "formula:",
    "solution:",
)
CLAIM_MARKERS = ("is", "are", "hai", "hota hai", "states that", "law")
SUBSTANTIAL_SENTENCE_CHARS = 30


@dataclass(frozen=True)
class ParsedCitation:
    raw: str
    type: Literal["NCERT", "PYQ"]
    parts: Dict[str, str] = field(default_factory=dict)


def extract_citations(text: str) -> List[str]:
    """Return every citation token in ``text``, NCERT first, duplicates collapsed."""
    found: Dict[str, None] = {}
    for match in NCERT_PATTERN.finditer(text or ""):
        found.setdefault(match.group(0), None)
    for match in PYQ_PATTERN.finditer(text or ""):
        found.setdefault(match.group(0), None)
    return list(found)


def count_citations(text: str) -> int:
    return len(extract_citations(text))


def is_valid_citation(citation: str) -> bool:
    return bool(_NCERT_EXACT.match(citation) or _PYQ_EXACT.match(citation))


def parse_citation(citation: str) -> Optional[ParsedCitation]:
    if not is_valid_citation(citation):
        return None
    parts = citation.split(":")
    if parts[0] == "NCERT":
        return ParsedCitation(raw=citation, type="NCERT", parts={"doc_id": parts[1], "section": parts[2]})
    return ParsedCitation(
        raw=citation,
        type="PYQ",
        parts={"exam": parts[1], "year": parts[2], "slot": parts[3], "qid": parts[4]},
    )


def has_citation(text: str) -> bool:
    return bool(NCERT_PATTERN.search(text) or PYQ_PATTERN.search(text))


def find_uncited_sentences(text: str) -> List[str]:
    """Heuristically list claim-like sentences that carry no citation token.

    Sentences are split on terminal punctuation, so a citation whose section
    contains a dot is cut in two. This approximation is part of the contract.
    """
    sentences = [segment.strip() for segment in re.split(r"[.!?]+", text or "")]
    uncited: List[str] = []
    for sentence in sentences:
        if not sentence or has_citation(sentence):
            continue
        lowered = sentence.lower()
        if "?" in sentence or any(marker in lowered for marker in CONVERSATIONAL_MARKERS):
            continue
        if any(marker in lowered for marker in CLAIM_MARKERS) or len(sentence) > SUBSTANTIAL_SENTENCE_CHARS:
            uncited.append(sentence)
    return uncited


def validate_all_citations(text: str) -> Dict[str, object]:
    invalid = [citation for citation in extract_citations(text) if not is_valid_citation(citation)]
    return {"valid": not invalid, "invalid_citations": invalid}
