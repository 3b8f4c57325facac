from datetime import date

from fastapi import APIRouter, Depends, HTTPException

from cardperks.api.dependencies import get_orchestrator
from cardperks.domain.models import CalculationMode
from cardperks.schemas.requests import RecalculateRequest
from cardperks.schemas.responses import ProgressResponse, RecalculateResponse, ValidationResponse
from cardperks.services.orchestrator import RewardOrchestrator

router = APIRouter(prefix="/cards", tags=["cards"])


@router.get("/validation", response_model=ValidationResponse)
def validation(orchestrator: RewardOrchestrator = Depends(get_orchestrator)) -> ValidationResponse:
    try:
        return ValidationResponse(cards=orchestrator.validate_wallet())
    except FileNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/{card_id}/progress", response_model=ProgressResponse)
def progress(
    card_id: str,
    on: date | None = None,
    mode: CalculationMode | None = None,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
) -> ProgressResponse:
    reference_date = on or date.today()
    try:
        rules = orchestrator.rule_progress(card_id, reference_date, mode)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except FileNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return ProgressResponse(card_id=card_id, reference_date=reference_date, rules=rules)


@router.post("/{card_id}/recalculate", response_model=RecalculateResponse)
def recalculate(
    card_id: str,
    request: RecalculateRequest,
    orchestrator: RewardOrchestrator = Depends(get_orchestrator),
) -> RecalculateResponse:
    try:
        transactions = orchestrator.recalculate_card(card_id, request.mode, request.persist)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except FileNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return RecalculateResponse(card_id=card_id, transactions=transactions)
