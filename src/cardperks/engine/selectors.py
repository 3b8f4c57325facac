from typing import Callable

from cardperks.domain.models import CalculationMode, CalculationResult, Card, CardEvaluation, Transaction
from cardperks.engine.calculator import RewardCalculator


def to_evaluation(card: Card, result: CalculationResult) -> CardEvaluation:
    return CardEvaluation(
        card_id=card.id,
        card_name=card.name,
        total_reward=result.total_reward,
        fee=result.transaction_fee,
        net_reward=result.net_reward,
        effective_rate=round(result.effective_rate, 4),
        applied_rule_names=result.applied_rule_names,
        warnings=[warning.message for warning in result.warnings],
    )


def rank_cards(
    cards: list[Card],
    transaction: Transaction,
    mode: CalculationMode = CalculationMode.TRAVEL,
    calculator_for: Callable[[Card], RewardCalculator] | None = None,
    usage_for: Callable[[Card], dict[str, float]] | None = None,
) -> list[CardEvaluation]:
    evaluations = []
    for card in cards:
        calculator = calculator_for(card) if calculator_for else RewardCalculator()
        usage_map = usage_for(card) if usage_for else {}
        candidate = transaction.model_copy(update={"card_id": card.id})
        result = calculator.calculate(card, candidate, usage_map, mode)
        evaluations.append(to_evaluation(card, result))

    evaluations.sort(key=lambda item: (item.net_reward, item.total_reward), reverse=True)
    return evaluations
