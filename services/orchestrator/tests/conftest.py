import sys
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[3]
for path in (ROOT, ROOT / "packages" / "py-shared"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from services.orchestrator.schemas import OrchestratorTask  # noqa: E402


def make_task(**overrides: Any) -> OrchestratorTask:
    payload: dict[str, Any] = {
        "user_msg": "What is the formula for kinetic energy",
        "mode": "explain",
        "subject": "Physics",
        "board": "CBSE",
        "class": 11,
    }
    payload.update(overrides)
    return OrchestratorTask.model_validate(payload)


@pytest.fixture
def task_factory():
    return make_task
