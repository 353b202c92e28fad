from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ... import config
from ...engine.schemas import (
    CandidateResponse,
    EvaluationCell,
    ScoredCandidate,
)


def _check_prompt(v: str) -> str:
    if not v.strip():
        raise ValueError("prompt_empty")
    if len(v) > config.MAX_PROMPT_CHARS:
        raise ValueError("input_too_large")
    return v


class ModelSelection(BaseModel):
    """A model picked for this run. Plain strings are accepted as the id."""

    id: str = Field(min_length=1)
    name: Optional[str] = None
    enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_id(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"id": data}
        return data


class CandidatePayload(BaseModel):
    """Wire shape of a candidate; accepts the camelCase names used by the web client."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1, validation_alias=AliasChoices("id", "modelId", "model_id"))
    display_name: str = Field(
        default="", validation_alias=AliasChoices("display_name", "displayName", "modelName", "model_name")
    )
    text: str = Field(validation_alias=AliasChoices("text", "response"))

    @field_validator("text")
    @classmethod
    def _text_size_limit(cls, v: str) -> str:
        if len(v) > config.MAX_RESPONSE_CHARS:
            raise ValueError("input_too_large")
        return v

    def to_candidate(self) -> CandidateResponse:
        return CandidateResponse(id=self.id, display_name=self.display_name or self.id, text=self.text)


class _ModelsRequest(BaseModel):
    models: list[ModelSelection] = Field(min_length=1)
    prompt: str
    image_data: Optional[str] = Field(default=None, validation_alias=AliasChoices("image_data", "imageData"))

    @field_validator("prompt")
    @classmethod
    def _prompt_size_limit(cls, v: str) -> str:
        return _check_prompt(v)

    @field_validator("image_data")
    @classmethod
    def _image_size_limit(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > config.MAX_IMAGE_DATA_CHARS:
            raise ValueError("input_too_large")
        return v or None

    @model_validator(mode="after")
    def _unique_models(self):
        enabled = self.enabled_models()
        ids = [m.id for m in enabled]
        if len(ids) != len(set(ids)):
            raise ValueError("duplicate_models")
        if len(ids) > config.MAX_MODELS_PER_RUN:
            raise ValueError("too_many_models")
        return self

    def enabled_models(self) -> list[ModelSelection]:
        return [m for m in self.models if m.enabled]

    def display_names(self) -> dict[str, str]:
        return {m.id: m.name for m in self.enabled_models() if m.name}


class GenerateResponsesRequest(_ModelsRequest):
    pass


class GenerateResponsesResponse(BaseModel):
    responses: list[CandidateResponse]
    errors: dict[str, str] = Field(default_factory=dict)


class CrossEvaluateRequest(BaseModel):
    responses: list[CandidatePayload]
    original_prompt: str = Field(validation_alias=AliasChoices("original_prompt", "originalPrompt", "prompt"))

    @field_validator("original_prompt")
    @classmethod
    def _prompt_size_limit(cls, v: str) -> str:
        return _check_prompt(v)


class CrossEvaluateResponse(BaseModel):
    evaluated_responses: list[ScoredCandidate]
    top_three: list[ScoredCandidate]
    matrix: list[EvaluationCell]


class FinalRankingRequest(BaseModel):
    top_responses: list[CandidatePayload] = Field(
        max_length=config.SHORTLIST_SIZE,
        validation_alias=AliasChoices("top_responses", "topResponses", "top_three", "topThree"),
    )
    original_prompt: str = Field(validation_alias=AliasChoices("original_prompt", "originalPrompt", "prompt"))

    @field_validator("original_prompt")
    @classmethod
    def _prompt_size_limit(cls, v: str) -> str:
        return _check_prompt(v)

    @model_validator(mode="after")
    def _unique_ids(self):
        ids = [c.id for c in self.top_responses]
        if len(ids) != len(set(ids)):
            raise ValueError("duplicate_candidate_ids")
        return self


class FinalRankingResponse(BaseModel):
    ranking: list[str]


class AlignmentRequest(BaseModel):
    human_pick: str = Field(
        min_length=1, validation_alias=AliasChoices("human_pick", "humanPick", "userSelection")
    )
    ranking: list[str] = Field(validation_alias=AliasChoices("ranking", "final_ranking", "arbiterRanking"))


class RunRequest(_ModelsRequest):
    @model_validator(mode="after")
    def _minimum_models(self):
        if len(self.enabled_models()) < config.MIN_MODELS_PER_RUN:
            raise ValueError("not_enough_models")
        return self


class RunResponse(BaseModel):
    run_id: str
    responses: list[CandidateResponse]
    errors: dict[str, str]
    evaluated_responses: list[ScoredCandidate]
    top_three: list[ScoredCandidate]
    ranking: list[str]
    degraded: bool
    notes: list[str] = Field(default_factory=list)
    latency_ms: int
