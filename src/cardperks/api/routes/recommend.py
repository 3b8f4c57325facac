from fastapi import APIRouter, Depends, HTTPException

from cardperks.api.dependencies import get_orchestrator
from cardperks.domain.models import CalculationResult
from cardperks.schemas.requests import CalculateRequest, PurchaseRequest, SimulateRequest
from cardperks.schemas.responses import RecommendResponse
from cardperks.services.orchestrator import RewardOrchestrator

router = APIRouter(tags=["recommend"])


@router.post("/recommend", response_model=RecommendResponse)
def recommend(
    request: PurchaseRequest,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
) -> RecommendResponse:
    try:
        ranked = orchestrator.recommend(request)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ValueError, FileNotFoundError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return RecommendResponse(best_card=ranked[0], ranked_cards=ranked)


@router.post("/calculate", response_model=CalculationResult)
def calculate(
    request: CalculateRequest,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
) -> CalculationResult:
    try:
        return orchestrator.calculate(request.card_id, request.transaction, request.usage_map, request.mode)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except FileNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/simulate", response_model=CalculationResult)
def simulate(
    request: SimulateRequest,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
) -> CalculationResult:
    try:
        return orchestrator.simulate(request.card_id, request)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except FileNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
