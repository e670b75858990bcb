"""Tutor prompt orchestration and verification service."""
