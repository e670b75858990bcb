"""Hindi / Hinglish / English detection for user messages and drafts."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .schemas import DetectedLanguage, DraftLanguage, LanguageDetectionResult, ScriptType

logger = logging.getLogger("uvicorn.error")

MIN_CHARS = 6
CONFIDENCE_THRESHOLD = 0.75
HYSTERESIS_THRESHOLD = 0.65

DEVANAGARI_RE = re.compile(r"[\u0900-\u097F]")
LATIN_RE = re.compile(r"[a-zA-Z]")

# Transliterated Hindi words that mark a Latin-script message as Hinglish.
HINDI_LEXICON = (
    "hai",
    "hota",
    "hoti",
    "hote",
    "karta",
    "karti",
    "karte",
    "karna",
    "kehlaata",
    "aur",
    "toh",
    "yaani",
    "matlab",
    "samajh",
    "kya",
    "kaise",
    "kyun",
    "kyunki",
    "agar",
    "jab",
    "tum",
    "aap",
    "me",
    "se",
    "ka",
    "ki",
    "ke",
    "lagta",
    "dekho",
    "basically",
)
_LEXICON_PATTERNS = tuple(re.compile(rf"\b{word}\b", re.IGNORECASE) for word in HINDI_LEXICON)

# Smaller list used when judging generated drafts; matched as substrings.
DRAFT_HINDI_WORDS = ("hai", "hota", "karta", "karte", "kehlaata", "aur", "toh", "yaani", "matlab", "samajh")

_PREFERRED_CODES = {"hi": "hindi", "hindi": "hindi", "hinglish": "hinglish"}


@dataclass(frozen=True)
class TextAnalysis:
    devanagari_ratio: float
    latin_ratio: float
    hindi_word_count: int
    english_word_count: int
    script: ScriptType


def preferred_language(code: Optional[str]) -> DetectedLanguage:
    """Map a requested language code onto a detected-language label."""
    return _PREFERRED_CODES.get((code or "").strip().lower(), "english")  # type: ignore[return-value]


def analyze_text(text: str) -> TextAnalysis:
    total = len(text) or 1
    devanagari_ratio = len(DEVANAGARI_RE.findall(text)) / total
    latin_ratio = len(LATIN_RE.findall(text)) / total
    hindi_word_count = sum(1 for pattern in _LEXICON_PATTERNS if pattern.search(text))
    english_word_count = max(0, len(text.split()) - hindi_word_count)

    script: ScriptType
    if devanagari_ratio > 0.5:
        script = "devanagari"
    elif latin_ratio > 0.8 and devanagari_ratio == 0:
        script = "latin"
    else:
        script = "mixed"
    return TextAnalysis(
        devanagari_ratio=devanagari_ratio,
        latin_ratio=latin_ratio,
        hindi_word_count=hindi_word_count,
        english_word_count=english_word_count,
        script=script,
    )


def classify(analysis: TextAnalysis) -> Tuple[DetectedLanguage, float]:
    """Apply the priority-ordered classification policy."""
    if analysis.devanagari_ratio > 0.5:
        return "hindi", 0.95

    if analysis.script == "latin" and analysis.hindi_word_count >= 3:
        hindi_ratio = analysis.hindi_word_count / (analysis.hindi_word_count + analysis.english_word_count + 1)
        if hindi_ratio > 0.3:
            return "hinglish", 0.7 + min(hindi_ratio * 0.2, 0.25)

    if analysis.script == "mixed":
        return "hinglish", 0.8

    if analysis.script == "latin" and analysis.hindi_word_count == 0 and analysis.latin_ratio > 0.7:
        return "english", 0.9

    return "english", 0.6


class LanguageDetector:
    """Stateful detector; one instance per conversation.

    The last detected language is remembered so that a low-confidence turn
    disagreeing with it does not flip the session language.
    """

    def __init__(self) -> None:
        self.last_detected_language: Optional[DetectedLanguage] = None

    def detect(self, text: str, preferred: Optional[str] = None) -> LanguageDetectionResult:
        logger.debug("Detecting language (length=%d, preferred=%s)", len(text), preferred)
        if len(text) < MIN_CHARS:
            return LanguageDetectionResult(
                label=preferred_language(preferred),
                confidence=0.5,
                should_switch=False,
                detected_from=text,
                char_count=len(text),
            )

        analysis = analyze_text(text)
        language, confidence = classify(analysis)
        final_language = self._apply_hysteresis(language, confidence)
        final_confidence = confidence if final_language == language else max(confidence, HYSTERESIS_THRESHOLD)
        should_switch = final_confidence >= CONFIDENCE_THRESHOLD and len(text) >= MIN_CHARS

        self.last_detected_language = final_language
        result = LanguageDetectionResult(
            label=final_language,
            confidence=final_confidence,
            should_switch=should_switch,
            script=analysis.script,
            char_count=len(text),
            detected_from=text,
            metadata={
                "hindi_char_ratio": analysis.devanagari_ratio,
                "english_word_count": float(analysis.english_word_count),
                "hindi_word_count": float(analysis.hindi_word_count),
            },
        )
        logger.debug(
            "Language detected: %s (confidence=%.2f, should_switch=%s)",
            result.label,
            result.confidence,
            result.should_switch,
        )
        return result

    def _apply_hysteresis(self, language: DetectedLanguage, confidence: float) -> DetectedLanguage:
        previous = self.last_detected_language
        if previous is None or previous == language:
            return language
        if confidence < HYSTERESIS_THRESHOLD:
            logger.debug("Hysteresis kept %s over %s (confidence=%.2f)", previous, language, confidence)
            return previous
        return language

    def reset(self) -> None:
        self.last_detected_language = None
        logger.debug("Language detector reset")


def detect_draft_language(text: str) -> Tuple[DraftLanguage, float]:
    """Classify a generated draft; unlike user messages a draft may be ``mixed``."""
    total = len(text) or 1
    devanagari_count = len(DEVANAGARI_RE.findall(text))
    latin_count = len(LATIN_RE.findall(text))
    devanagari_ratio = devanagari_count / total
    latin_ratio = latin_count / total
    lowered = text.lower()
    hindi_word_count = sum(1 for word in DRAFT_HINDI_WORDS if word in lowered)

    if devanagari_ratio > 0.5:
        return "hindi", 0.95
    if hindi_word_count >= 3 and latin_ratio > 0.5:
        return "hinglish", 0.85
    if latin_ratio > 0.8 and devanagari_count == 0 and hindi_word_count == 0:
        return "english", 0.9
    if devanagari_count and latin_count:
        return "mixed", 0.7
    return "english", 0.6
