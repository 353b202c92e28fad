import asyncio
import os

# Ensure config reads these during import in tests.
os.environ.setdefault("ENV", "test")
os.environ.setdefault("SCORER_TIMEOUT_SECONDS", "5")
os.environ.setdefault("ARBITER_TIMEOUT_SECONDS", "5")

import pytest

from backend.src.engine.schemas import CandidateResponse


class FakeScorer:
    """Scores from a callable `fn(evaluator_id, evaluated_text) -> float`, recording every call."""

    def __init__(self, fn=None, delay_seconds: float = 0.0):
        self._fn = fn or (lambda evaluator_id, evaluated_text: 5.0)
        self._delay = delay_seconds
        self.calls: list[tuple[str, str, str]] = []

    async def score(self, prompt, evaluated_text, evaluator_id):
        self.calls.append((prompt, evaluated_text, evaluator_id))
        if self._delay:
            await asyncio.sleep(self._delay)
        return self._fn(evaluator_id, evaluated_text)


class FakeArbiter:
    def __init__(self, answer="A B C", exc: Exception | None = None):
        self.answer = answer
        self.exc = exc
        self.calls: list[tuple[str, list[tuple[str, str]]]] = []

    async def rank(self, prompt, labeled_candidates):
        self.calls.append((prompt, list(labeled_candidates)))
        if self.exc is not None:
            raise self.exc
        return self.answer


def make_candidates(*ids: str) -> list[CandidateResponse]:
    return [CandidateResponse(id=i, display_name=i.upper(), text=f"text-{i}") for i in ids]


@pytest.fixture
def candidates():
    return make_candidates("p", "q", "r", "s")
