from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..schemas.evaluation import (
    AlignmentRequest,
    CrossEvaluateRequest,
    CrossEvaluateResponse,
    FinalRankingRequest,
    FinalRankingResponse,
    GenerateResponsesRequest,
    GenerateResponsesResponse,
    RunRequest,
    RunResponse,
)
from ... import config
from ...engine.capabilities import Arbiter, Scorer
from ...engine.evaluation import InvalidCandidatesError, check_alignment, evaluate_and_rank, reconcile
from ...engine.generation import generate_responses
from ...engine.schemas import AlignmentResult
from ...services.capability_factory import get_arbiter, get_scorer
from ...services.crossrank_runner import CrossrankRunner


router = APIRouter()


@router.get("/api/models")
async def list_models():
    """Model catalogue offered to clients, with the default selection and arbiter."""
    return {
        "models": [{"id": model_id, "name": name} for model_id, name in config.MODEL_CATALOGUE.items()],
        "default_models": list(config.DEFAULT_MODELS),
        "arbiter_model": config.ARBITER_MODEL,
        "min_models": config.MIN_MODELS_PER_RUN,
    }


@router.post("/api/generate-responses", response_model=GenerateResponsesResponse)
async def generate(request: GenerateResponsesRequest):
    responses, errors = await generate_responses(
        [m.id for m in request.enabled_models()],
        request.prompt,
        image_data=request.image_data,
        display_names=request.display_names(),
    )
    return {"responses": responses, "errors": errors}


@router.post("/api/cross-evaluate", response_model=CrossEvaluateResponse)
async def cross_evaluate(request: CrossEvaluateRequest, scorer: Scorer = Depends(get_scorer)):
    """Have every response judged by every other model and return the top three."""
    try:
        result = await evaluate_and_rank([r.to_candidate() for r in request.responses], request.original_prompt, scorer)
    except InvalidCandidatesError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"evaluated_responses": result.all, "top_three": result.top_three, "matrix": result.matrix}


@router.post("/api/final-ranking", response_model=FinalRankingResponse)
async def final_ranking(request: FinalRankingRequest, arbiter: Arbiter = Depends(get_arbiter)):
    ranking = await reconcile([r.to_candidate() for r in request.top_responses], request.original_prompt, arbiter)
    return {"ranking": ranking}


@router.post("/api/alignment", response_model=AlignmentResult)
async def alignment(request: AlignmentRequest):
    if request.ranking and request.human_pick not in request.ranking:
        raise HTTPException(status_code=400, detail="human_pick_not_in_ranking")
    return check_alignment(request.human_pick, request.ranking)


@router.post("/api/run", response_model=RunResponse)
async def run(
    request: RunRequest,
    scorer: Scorer = Depends(get_scorer),
    arbiter: Arbiter = Depends(get_arbiter),
):
    """
    Run the whole flow for one prompt: generate, cross-evaluate, and ask the arbiter.
    Provider failures degrade the result instead of failing the request.
    """
    runner = CrossrankRunner(scorer, arbiter)
    result = await runner.run(
        [m.id for m in request.enabled_models()],
        request.prompt,
        image_data=request.image_data,
        display_names=request.display_names(),
    )
    evaluation = result.evaluation
    return {
        "run_id": result.run_id,
        "responses": result.responses,
        "errors": result.errors,
        "evaluated_responses": evaluation.all if evaluation else [],
        "top_three": evaluation.top_three if evaluation else [],
        "ranking": result.ranking,
        "degraded": result.degraded,
        "notes": result.notes,
        "latency_ms": result.latency_ms,
    }
