"""Cross-model evaluation: peer scoring matrix, aggregation, shortlist and arbiter reconciliation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import re
from typing import Sequence

from .. import config
from .capabilities import Arbiter, Scorer
from .schemas import (
    AggregateScore,
    AlignmentResult,
    CandidateResponse,
    EvaluationCell,
    EvaluationResult,
    ScoredCandidate,
)

logger = logging.getLogger(__name__)

ORDINAL_WORDS = ("first", "second", "third", "fourth", "fifth", "sixth", "seventh", "eighth", "ninth", "tenth")


class InvalidCandidatesError(ValueError):
    """Raised for candidate sets the engine cannot evaluate. The message is a machine-readable code."""


def validate_candidates(candidates: Sequence[CandidateResponse]) -> None:
    if not candidates:
        raise InvalidCandidatesError("no_candidates")
    seen: set[str] = set()
    for c in candidates:
        if c.id in seen:
            raise InvalidCandidatesError("duplicate_candidate_ids")
        seen.add(c.id)


def clamp_score(value: float) -> float:
    return max(config.MIN_SCORE, min(config.MAX_SCORE, float(value)))


async def build_evaluation_matrix(
    candidates: Sequence[CandidateResponse],
    prompt: str,
    scorer: Scorer,
    *,
    max_concurrency: int | None = None,
    timeout_seconds: float | None = None,
) -> list[EvaluationCell]:
    """
    Have every candidate judge every other candidate.

    One cell per ordered (evaluator, evaluated) pair with evaluator != evaluated, returned in
    input order regardless of completion order. A failed, unparsable or timed-out judgment
    becomes the neutral default for that cell only.
    """
    pairs = [
        (evaluator, evaluated)
        for evaluator in candidates
        for evaluated in candidates
        if evaluator.id != evaluated.id
    ]
    semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    async def _judge(evaluator: CandidateResponse, evaluated: CandidateResponse) -> EvaluationCell:
        gate = semaphore if semaphore is not None else contextlib.nullcontext()
        try:
            async with gate:
                raw = await asyncio.wait_for(
                    scorer.score(prompt, evaluated.text, evaluator.id),
                    timeout=timeout_seconds,
                )
            value = float(raw)
            if math.isnan(value):
                raise ValueError("judge returned NaN")
        except Exception as e:
            logger.warning(
                "judge_failed evaluator=%s evaluated=%s error=%s",
                evaluator.id,
                evaluated.id,
                f"{type(e).__name__}: {e}",
            )
            return EvaluationCell(
                evaluator_id=evaluator.id,
                evaluated_id=evaluated.id,
                score=config.NEUTRAL_SCORE,
                defaulted=True,
            )
        return EvaluationCell(evaluator_id=evaluator.id, evaluated_id=evaluated.id, score=clamp_score(value))

    cells = await asyncio.gather(*[_judge(evaluator, evaluated) for evaluator, evaluated in pairs])
    return list(cells)


def aggregate_scores(
    matrix: Sequence[EvaluationCell], candidates: Sequence[CandidateResponse]
) -> list[AggregateScore]:
    received: dict[str, list[float]] = {c.id: [] for c in candidates}
    for cell in matrix:
        if cell.evaluator_id == cell.evaluated_id:
            continue
        if cell.evaluated_id in received:
            received[cell.evaluated_id].append(cell.score)

    aggregate = []
    for c in candidates:
        scores = received[c.id]
        score = sum(scores) / len(scores) if scores else config.NEUTRAL_SCORE
        aggregate.append(AggregateScore(id=c.id, score=score, evaluations_count=len(scores)))
    return aggregate


def select_top_k(
    candidates: Sequence[CandidateResponse],
    aggregates: Sequence[AggregateScore],
    k: int | None = None,
) -> tuple[list[ScoredCandidate], list[ScoredCandidate]]:
    """Return (all candidates annotated in input order, top-k by score with ties kept in input order)."""
    k = config.SHORTLIST_SIZE if k is None else k
    by_id = {a.id: a.score for a in aggregates}
    scored = [
        ScoredCandidate(
            id=c.id,
            display_name=c.display_name,
            text=c.text,
            score=by_id.get(c.id, config.NEUTRAL_SCORE),
        )
        for c in candidates
    ]
    # sorted() is stable, so equal scores keep input order.
    ranked = sorted(scored, key=lambda s: -s.score)
    return scored, ranked[:k]


async def evaluate_and_rank(
    candidates: Sequence[CandidateResponse],
    prompt: str,
    scorer: Scorer,
    *,
    max_concurrency: int | None = None,
    timeout_seconds: float | None = None,
) -> EvaluationResult:
    validate_candidates(candidates)
    matrix = await build_evaluation_matrix(
        candidates,
        prompt,
        scorer,
        max_concurrency=max_concurrency if max_concurrency is not None else config.EVALUATION_MAX_CONCURRENCY,
        timeout_seconds=timeout_seconds,
    )
    aggregates = aggregate_scores(matrix, candidates)
    everyone, top = select_top_k(candidates, aggregates)

    defaulted = sum(1 for cell in matrix if cell.defaulted)
    logger.info(
        "cross_evaluation_complete candidates=%d cells=%d defaulted=%d top=%s",
        len(candidates),
        len(matrix),
        defaulted,
        ",".join(s.id for s in top),
    )
    return EvaluationResult(all=everyone, top_three=top, matrix=matrix)


def arbiter_labels(count: int) -> list[str]:
    return [chr(65 + i) for i in range(count)]


def parse_arbiter_ranking(text: str, labels: Sequence[str]) -> list[str] | None:
    """
    Extract an ordering of `labels` from the arbiter's free-text answer.

    Letter labels are matched as standalone tokens in order of first appearance. Lowercase
    letters ("c, then a, then b") count only when the answer names no uppercase label. Ordinal
    words ("first", "second", ...) stand for the label at that position, and are only consulted
    when the answer names no letter label at all. Returns None unless every label was recovered.
    """
    if not text or not labels:
        return None

    alternatives = "|".join(re.escape(label) for label in labels)
    found = re.findall(r"\b(" + alternatives + r")\b", text)
    if not found:
        found = [m.upper() for m in re.findall(r"\b(" + alternatives + r")\b", text, re.IGNORECASE)]
    if not found:
        ordinals = ORDINAL_WORDS[: len(labels)]
        ordinal_re = re.compile(r"\b(" + "|".join(ordinals) + r")\b", re.IGNORECASE)
        found = [labels[ordinals.index(word.lower())] for word in ordinal_re.findall(text)]

    ordered: list[str] = []
    for label in found:
        if label not in ordered:
            ordered.append(label)
        if len(ordered) == len(labels):
            break

    if len(ordered) < len(labels):
        return None
    return ordered


async def reconcile(
    top_three: Sequence[CandidateResponse],
    prompt: str,
    arbiter: Arbiter,
    *,
    timeout_seconds: float | None = None,
) -> list[str]:
    """
    Ask the arbiter for a final order over the shortlist.

    Falls back to the shortlist's own order when the arbiter fails or its answer does not name
    every candidate. Never raises.
    """
    fallback = [c.id for c in top_three]
    if len(top_three) < 2:
        return fallback

    labels = arbiter_labels(len(top_three))
    label_to_id = {label: c.id for label, c in zip(labels, top_three)}
    labeled = [(label, c.text) for label, c in zip(labels, top_three)]

    try:
        answer = await asyncio.wait_for(arbiter.rank(prompt, labeled), timeout=timeout_seconds)
    except Exception as e:
        logger.warning("arbiter_failed error=%s; using aggregate order", f"{type(e).__name__}: {e}")
        return fallback

    order = parse_arbiter_ranking(answer if isinstance(answer, str) else "", labels)
    if order is None:
        logger.warning("arbiter_answer_unusable answer=%r; using aggregate order", str(answer)[:200])
        return fallback
    return [label_to_id[label] for label in order]


def check_alignment(human_pick: str, final_ranking: Sequence[str]) -> AlignmentResult:
    arbiter_top = final_ranking[0] if final_ranking else None
    return AlignmentResult(
        human_pick=human_pick,
        arbiter_top=arbiter_top,
        aligned=arbiter_top is not None and human_pick == arbiter_top,
    )
