"""Shared models and utilities for Python services."""

from .citations import (  # noqa: F401
    NCERT_PATTERN,
    PYQ_PATTERN,
    ParsedCitation,
    count_citations,
    extract_citations,
    find_uncited_sentences,
    is_valid_citation,
    parse_citation,
    validate_all_citations,
)
