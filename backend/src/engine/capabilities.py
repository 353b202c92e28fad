"""Scorer and Arbiter capabilities consumed by the evaluation engine."""

from __future__ import annotations

import re
from typing import Protocol, Sequence

from .. import config
from . import prompts
from .providers import query_model


class CapabilityError(RuntimeError):
    pass


class ScoreParseError(CapabilityError):
    pass


class Scorer(Protocol):
    async def score(self, prompt: str, evaluated_text: str, evaluator_id: str) -> float: ...


class Arbiter(Protocol):
    async def rank(self, prompt: str, labeled_candidates: Sequence[tuple[str, str]]) -> str: ...


_NUMBER = r"[-+]?\d+(?:\.\d+)?"
_RE_NUMBER = re.compile(_NUMBER)
_RE_LONE_NUMBER = re.compile(r"^\s*(" + _NUMBER + r")\s*\.?\s*$", re.MULTILINE)
# Scale mentions such as "1-10", "1 to 10", "/10" and "out of 10".
_RE_SCALE = re.compile(r"\b\d+\s*(?:-|to)\s*\d+\b|/\s*\d+|\bout\s+of\s+\d+", re.IGNORECASE)


def parse_score(text: str | None) -> float:
    """
    Read a judge's numeric score.

    A reply that is just a number, or that has a number alone on a line, is taken as is.
    Otherwise scale mentions are ignored and the last remaining number wins, so
    "On a 1-10 scale: 8" reads as 8.
    """
    text = text or ""
    lone = _RE_LONE_NUMBER.findall(text)
    if lone:
        return float(lone[-1])
    numbers = _RE_NUMBER.findall(_RE_SCALE.sub(" ", text))
    if not numbers:
        raise ScoreParseError(f"no numeric score in judge output: {text[:80]!r}")
    return float(numbers[-1])


class ProviderScorer:
    """Asks the evaluator's own model to rate another candidate's response."""

    def __init__(self, *, timeout_seconds: float | None = None):
        self._timeout_seconds = timeout_seconds

    async def score(self, prompt: str, evaluated_text: str, evaluator_id: str) -> float:
        result = await query_model(
            evaluator_id,
            prompts.score_prompt(original_prompt=prompt, evaluated_text=evaluated_text),
            temperature=config.SCORE_TEMPERATURE,
            max_tokens=config.SCORE_MAX_TOKENS,
            timeout_seconds=self._timeout_seconds,
        )
        if not result.ok:
            raise CapabilityError(result.error_text or "judge call failed")
        return parse_score(result.content)


class ProviderArbiter:
    def __init__(self, model: str | None = None, *, timeout_seconds: float | None = None):
        self.model = model or config.ARBITER_MODEL
        self._timeout_seconds = timeout_seconds

    async def rank(self, prompt: str, labeled_candidates: Sequence[tuple[str, str]]) -> str:
        result = await query_model(
            self.model,
            prompts.arbiter_prompt(original_prompt=prompt, labeled_candidates=labeled_candidates),
            temperature=config.ARBITER_TEMPERATURE,
            max_tokens=config.ARBITER_MAX_TOKENS,
            timeout_seconds=self._timeout_seconds,
        )
        if not result.ok or result.content is None:
            raise CapabilityError(result.error_text or "arbiter call failed")
        return result.content
