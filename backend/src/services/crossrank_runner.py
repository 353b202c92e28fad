from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Sequence

from ..engine.capabilities import Arbiter, Scorer
from ..engine.evaluation import evaluate_and_rank, reconcile
from ..engine.generation import generate_responses
from ..engine.schemas import CandidateResponse, EvaluationResult

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    run_id: str
    responses: list[CandidateResponse]
    errors: dict[str, str]
    evaluation: EvaluationResult | None
    ranking: list[str]
    latency_ms: int
    degraded: bool = False
    notes: list[str] = field(default_factory=list)


class CrossrankRunner:
    """Generate -> cross-evaluate -> reconcile, for one prompt."""

    def __init__(self, scorer: Scorer, arbiter: Arbiter, *, run_id: str | None = None):
        self._scorer = scorer
        self._arbiter = arbiter
        self.run_id = run_id or str(uuid.uuid4())

    async def generate(
        self,
        models: Sequence[str],
        prompt: str,
        *,
        image_data: str | None = None,
        display_names: dict[str, str] | None = None,
    ) -> tuple[list[CandidateResponse], dict[str, str]]:
        candidates, errors = await generate_responses(
            models, prompt, image_data=image_data, display_names=display_names
        )
        logger.info(
            "generation_complete run_id=%s ok=%d failed=%d", self.run_id, len(candidates), len(errors)
        )
        return candidates, errors

    async def evaluate(self, candidates: Sequence[CandidateResponse], prompt: str) -> EvaluationResult:
        return await evaluate_and_rank(candidates, prompt, self._scorer)

    async def finalize(self, top_three: Sequence[CandidateResponse], prompt: str) -> list[str]:
        ranking = await reconcile(top_three, prompt, self._arbiter)
        logger.info("final_ranking run_id=%s ranking=%s", self.run_id, ",".join(ranking))
        return ranking

    async def run(
        self,
        models: Sequence[str],
        prompt: str,
        *,
        image_data: str | None = None,
        display_names: dict[str, str] | None = None,
    ) -> RunResult:
        started = time.monotonic()
        candidates, errors = await self.generate(
            models, prompt, image_data=image_data, display_names=display_names
        )
        if not candidates:
            return RunResult(
                run_id=self.run_id,
                responses=[],
                errors=errors,
                evaluation=None,
                ranking=[],
                latency_ms=int((time.monotonic() - started) * 1000),
                degraded=True,
                notes=["all_models_failed"],
            )

        evaluation = await self.evaluate(candidates, prompt)
        ranking = await self.finalize(evaluation.top_three, prompt)

        notes: list[str] = []
        if errors:
            notes.append("generation_failures")
        if any(cell.defaulted for cell in evaluation.matrix):
            notes.append("judge_failures")
        return RunResult(
            run_id=self.run_id,
            responses=candidates,
            errors=errors,
            evaluation=evaluation,
            ranking=ranking,
            latency_ms=int((time.monotonic() - started) * 1000),
            degraded=bool(notes),
            notes=notes,
        )
