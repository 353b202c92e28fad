from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CandidateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    display_name: str
    text: str


class EvaluationCell(BaseModel):
    model_config = ConfigDict(frozen=True)

    evaluator_id: str
    evaluated_id: str
    score: float = Field(ge=1.0, le=10.0)
    # True when the neutral default was substituted for a failed judgment.
    defaulted: bool = False


class AggregateScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    score: float
    evaluations_count: int = 0


class ScoredCandidate(CandidateResponse):
    """A candidate annotated with its cross-evaluation aggregate."""

    score: float


class EvaluationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    all: list[ScoredCandidate]
    top_three: list[ScoredCandidate]
    matrix: list[EvaluationCell] = Field(default_factory=list)


class AlignmentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    human_pick: str
    arbiter_top: str | None
    aligned: bool
