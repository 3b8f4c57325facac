import logging
import math

from cardperks.domain.models import (
    BonusRule,
    CalculationMode,
    CalculationResult,
    CalculationWarning,
    Card,
    Currency,
    CumulativeThreshold,
    FixedRule,
    PercentageRule,
    Program,
    Region,
    RuleBreakdown,
    Transaction,
    WarningCode,
)
from cardperks.engine.matcher import find_applicable_program, find_fallback_program
from cardperks.engine.spending import CumulativeSpendingCalculator

logger = logging.getLogger(__name__)

BASE_RULE_ID = "base"
DEFAULT_FOREIGN_TX_FEE = 1.5
LEGACY_RULE_REGION = Region.JAPAN

ALLOWED_REGIONS = {
    CalculationMode.TRAVEL: {Region.GLOBAL, Region.JAPAN},
    CalculationMode.DAILY: {Region.GLOBAL, Region.TAIWAN},
}


class RewardCalculator:
    """Evaluates one transaction against one card.

    The calculator holds no state between calls. Prior usage arrives through
    ``usage_map`` and cumulative spending through the optional injected
    ``cumulative_calculator``; without one, cumulative thresholds count as met.
    """

    def __init__(self, cumulative_calculator: CumulativeSpendingCalculator | None = None):
        self.cumulative_calculator = cumulative_calculator

    def calculate(
        self,
        card: Card,
        transaction: Transaction,
        usage_map: dict[str, float] | None = None,
        mode: CalculationMode = CalculationMode.TRAVEL,
    ) -> CalculationResult:
        usage_map = usage_map or {}
        result = CalculationResult(card_id=card.id)

        program = find_applicable_program(card, transaction.date)
        if program is None and card.programs:
            program = self._fallback_program(card, transaction, result)

        if program is None:
            result.warnings.append(
                CalculationWarning(
                    code=WarningCode.NO_PROGRAM,
                    message=f"No reward program of {card.name} applies on {transaction.date}",
                )
            )
            return result

        result.program_id = program.id

        exchange_rate = transaction.exchange_rate if transaction.currency == Currency.JPY else 1
        amount_twd = math.floor(transaction.amount * exchange_rate)
        result.amount_twd = amount_twd

        self._add_base_reward(program, amount_twd, mode, result)
        for rule in program.bonus_rules:
            self._evaluate_rule(rule, program, transaction, amount_twd, exchange_rate, usage_map, mode, result)

        result.effective_rate = result.total_reward / amount_twd if amount_twd > 0 else 0
        result.transaction_fee = self._transaction_fee(card, transaction, amount_twd, mode)
        result.net_reward = result.total_reward - result.transaction_fee
        return result

    def _fallback_program(
        self, card: Card, transaction: Transaction, result: CalculationResult
    ) -> Program | None:
        fallback = find_fallback_program(card, transaction.date)
        if fallback is None:
            return None

        program, code = fallback
        if code == WarningCode.PROGRAM_EXPIRED:
            message = f"Program '{program.name}' expired on {program.end_date}; rewards may be inaccurate"
        else:
            message = f"Program '{program.name}' starts on {program.start_date}; rewards may be inaccurate"

        logger.info("Card %s: falling back to program %s for %s (%s)", card.id, program.id, transaction.date, code.value)
        result.warnings.append(CalculationWarning(code=code, message=message))
        return program

    def _add_base_reward(
        self, program: Program, amount_twd: int, mode: CalculationMode, result: CalculationResult
    ) -> None:
        if mode == CalculationMode.TRAVEL:
            rate, name = program.base_rate_overseas, "Overseas base reward"
        else:
            rate, name = program.base_rate_domestic, "Domestic base reward"

        reward = math.floor(amount_twd * rate)
        result.breakdown.append(RuleBreakdown(rule_id=BASE_RULE_ID, rule_name=name, amount=reward, rate=rate))
        result.total_reward += reward

    def _evaluate_rule(
        self,
        rule: BonusRule,
        program: Program,
        transaction: Transaction,
        amount_twd: int,
        exchange_rate: float,
        usage_map: dict[str, float],
        mode: CalculationMode,
        result: CalculationResult,
    ) -> None:
        if not self._is_applicable(rule, program, transaction, amount_twd, exchange_rate, mode):
            logger.debug("Rule %s skipped for transaction %s", rule.id, transaction.id)
            return

        used = usage_map.get(rule.id, 0)
        bonus = self._bonus_amount(rule, program, transaction, amount_twd, exchange_rate, used)

        capped = False
        cap_limit = None
        if isinstance(rule, PercentageRule) and rule.cap is not None:
            cap_limit = self._to_twd(rule.cap.amount, rule.cap.currency, exchange_rate)
            remaining = self._to_twd(max(0, rule.cap.amount - used), rule.cap.currency, exchange_rate)
            if bonus > remaining:
                logger.info("Rule %s capped: %s -> %s TWD", rule.id, bonus, remaining)
                bonus, capped = remaining, True
                result.warnings.append(
                    CalculationWarning(
                        code=WarningCode.RULE_CAPPED,
                        message=f"Rule '{rule.name}' has reached its cap",
                        rule_id=rule.id,
                    )
                )

        if bonus <= 0 and not capped:
            return

        usage_currency = rule.usage_currency
        usage_amount = math.floor(bonus / exchange_rate) if usage_currency == Currency.JPY else bonus
        result.breakdown.append(
            RuleBreakdown(
                rule_id=rule.id,
                rule_name=rule.name,
                amount=bonus,
                rate=rule.rate if isinstance(rule, PercentageRule) else 0,
                capped=capped,
                cap_limit=cap_limit,
                usage_amount=usage_amount,
                usage_currency=usage_currency,
            )
        )
        result.total_reward += bonus

    def _is_applicable(
        self,
        rule: BonusRule,
        program: Program,
        transaction: Transaction,
        amount_twd: int,
        exchange_rate: float,
        mode: CalculationMode,
    ) -> bool:
        if rule.start_date and transaction.date < rule.start_date:
            return False
        if rule.end_date and transaction.date > rule.end_date:
            return False

        if (rule.region or LEGACY_RULE_REGION) not in ALLOWED_REGIONS[mode]:
            return False

        if rule.categories and transaction.category not in rule.categories:
            return False

        if rule.specific_merchants and not any(
            merchant in transaction.merchant_name for merchant in rule.specific_merchants
        ):
            return False

        if rule.payment_methods and transaction.payment_method not in rule.payment_methods:
            return False

        if rule.min_amount is not None:
            return self._meets_min_amount(rule, program, transaction, amount_twd, exchange_rate)

        return True

    def _meets_min_amount(
        self,
        rule: BonusRule,
        program: Program,
        transaction: Transaction,
        amount_twd: int,
        exchange_rate: float,
    ) -> bool:
        threshold = rule.min_amount
        current = self._amount_in(transaction, amount_twd, exchange_rate, threshold.currency)

        if not isinstance(threshold, CumulativeThreshold):
            return current >= threshold.amount

        if self.cumulative_calculator is None:
            return True

        prior = self._prior_spending(transaction, program, threshold.currency)
        return prior + current >= threshold.amount

    def _bonus_amount(
        self,
        rule: BonusRule,
        program: Program,
        transaction: Transaction,
        amount_twd: int,
        exchange_rate: float,
        used: float,
    ) -> int:
        if amount_twd == 0:
            return 0

        if isinstance(rule, FixedRule):
            if used > 0:
                return 0
            return self._to_twd(rule.fixed_reward_amount, rule.fixed_reward_currency, exchange_rate)

        if not rule.is_cumulative or self.cumulative_calculator is None:
            return math.floor(amount_twd * rule.rate)

        currency = rule.min_amount.currency
        current = self._amount_in(transaction, amount_twd, exchange_rate, currency)
        total = self._prior_spending(transaction, program, currency) + current
        total_twd = self._to_twd(total, currency, exchange_rate)

        expected = math.floor(total_twd * rule.rate)
        already_paid = self._to_twd(used, rule.usage_currency, exchange_rate)
        return max(0, expected - already_paid)

    def _prior_spending(self, transaction: Transaction, program: Program, currency: Currency) -> float:
        return self.cumulative_calculator(transaction.id, program.start_date, program.end_date, currency)

    @staticmethod
    def _amount_in(
        transaction: Transaction, amount_twd: int, exchange_rate: float, currency: Currency
    ) -> float:
        if currency == Currency.TWD:
            return amount_twd
        if transaction.currency == Currency.JPY:
            return math.floor(transaction.amount)
        return math.floor(amount_twd / exchange_rate)

    @staticmethod
    def _to_twd(amount: float, currency: Currency, exchange_rate: float) -> int:
        if currency == Currency.JPY:
            return math.floor(amount * exchange_rate)
        return math.floor(amount)

    @staticmethod
    def _transaction_fee(
        card: Card, transaction: Transaction, amount_twd: int, mode: CalculationMode
    ) -> int:
        if mode != CalculationMode.TRAVEL and transaction.currency == Currency.TWD:
            return 0
        fee_rate = card.foreign_tx_fee if card.foreign_tx_fee is not None else DEFAULT_FOREIGN_TX_FEE
        return math.floor(amount_twd * fee_rate / 100)
