from __future__ import annotations

import logging
from typing import Sequence

from .. import config
from .providers import query_models_parallel
from .schemas import CandidateResponse

logger = logging.getLogger(__name__)


def display_name_for(model_id: str) -> str:
    return config.MODEL_CATALOGUE.get(model_id, model_id)


async def generate_responses(
    models: Sequence[str],
    prompt: str,
    *,
    image_data: str | None = None,
    display_names: dict[str, str] | None = None,
    timeout_seconds: float | None = None,
) -> tuple[list[CandidateResponse], dict[str, str]]:
    """
    Query every model once and collect the candidates to be cross-evaluated.

    Returns (candidates in `models` order, errors by model id). Models that fail are left out
    of the candidate list.
    """
    names = display_names or {}
    results = await query_models_parallel(
        list(models),
        prompt,
        image_data=image_data,
        max_tokens=config.GENERATION_MAX_TOKENS,
        timeout_seconds=timeout_seconds if timeout_seconds is not None else config.GENERATION_TIMEOUT_SECONDS,
    )

    candidates: list[CandidateResponse] = []
    errors: dict[str, str] = {}
    for model, result in results.items():
        if result.ok and result.content is not None:
            candidates.append(
                CandidateResponse(id=model, display_name=names.get(model) or display_name_for(model), text=result.content)
            )
        else:
            errors[model] = result.error_text or "Unknown provider error"
            logger.warning("generation_failed model=%s error=%s", model, errors[model])
    return candidates, errors
