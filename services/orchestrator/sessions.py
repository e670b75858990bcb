"""Session-scoped language detectors."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Optional

from .language import LanguageDetector


class LanguageSessionStore:
    """Thread-safe map from session id to that session's LanguageDetector.

    Least recently used sessions are evicted once ``max_sessions`` is reached.
    """

    def __init__(self, max_sessions: int = 10_000) -> None:
        self._detectors: "OrderedDict[str, LanguageDetector]" = OrderedDict()
        self._lock = threading.Lock()
        self.max_sessions = max(1, max_sessions)

    def get(self, session_id: Optional[str]) -> LanguageDetector:
        """Return the session's detector; anonymous requests get a fresh one."""
        if not session_id:
            return LanguageDetector()
        with self._lock:
            detector = self._detectors.get(session_id)
            if detector is None:
                detector = LanguageDetector()
                self._detectors[session_id] = detector
                while len(self._detectors) > self.max_sessions:
                    self._detectors.popitem(last=False)
            else:
                self._detectors.move_to_end(session_id)
            return detector

    def reset(self, session_id: str) -> bool:
        with self._lock:
            detector = self._detectors.pop(session_id, None)
        if detector is None:
            return False
        detector.reset()
        return True

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._detectors
