from datetime import date

from pydantic import BaseModel

from cardperks.domain.models import CardEvaluation, RuleProgress, Transaction
from cardperks.engine.matcher import ProgramValidation


class RecommendResponse(BaseModel):
    best_card: CardEvaluation
    ranked_cards: list[CardEvaluation]


class ProgressResponse(BaseModel):
    card_id: str
    reference_date: date
    rules: list[RuleProgress]


class ValidationResponse(BaseModel):
    cards: dict[str, ProgramValidation]


class RecalculateResponse(BaseModel):
    card_id: str
    transactions: list[Transaction]
