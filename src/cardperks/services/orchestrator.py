import logging
import uuid
from datetime import date
from typing import Iterable

from cardperks.domain.models import (
    CalculationMode,
    CalculationResult,
    Card,
    CardEvaluation,
    Currency,
    PercentageRule,
    RuleProgress,
    Transaction,
)
from cardperks.engine.calculator import ALLOWED_REGIONS, BASE_RULE_ID, LEGACY_RULE_REGION, RewardCalculator
from cardperks.engine.matcher import ProgramValidation, resolve_program, validate_programs
from cardperks.engine.selectors import rank_cards
from cardperks.engine.spending import make_cumulative_calculator
from cardperks.engine.usage import (
    DEFAULT_STATEMENT_DATE,
    build_usage_map,
    calculate_rule_usage,
    usage_period_for_card,
)
from cardperks.repository.wallet_store import WalletStore
from cardperks.schemas.requests import PurchaseRequest

logger = logging.getLogger(__name__)


def create_calculator_with_store(transactions: list[Transaction], card_id: str | None = None) -> RewardCalculator:
    return RewardCalculator(make_cumulative_calculator(lambda: transactions, card_id))


def current_usage_map(
    card: Card,
    transactions: Iterable[Transaction],
    on: date,
    default_statement_date: int = DEFAULT_STATEMENT_DATE,
) -> dict[str, float]:
    program = resolve_program(card, on)
    if program is None:
        return {}
    return build_usage_map(transactions, card, program, on, default_statement_date)


def rule_usage_from_result(result: CalculationResult) -> dict[str, float]:
    usage: dict[str, float] = {}
    for item in result.breakdown:
        if item.rule_id == BASE_RULE_ID:
            continue
        contribution = item.usage_amount if item.usage_amount is not None else item.amount
        usage[item.rule_id] = usage.get(item.rule_id, 0) + contribution
    return usage


def snapshot_transaction(card: Card, transaction: Transaction, result: CalculationResult) -> Transaction:
    """Freeze a calculation onto the transaction so later rule edits leave history alone."""
    return transaction.model_copy(
        update={
            "card_id": card.id,
            "program_id": result.program_id,
            "calculated_reward_amount": result.total_reward,
            "applied_rule_names": result.applied_rule_names,
            "rule_usage_map": rule_usage_from_result(result),
        }
    )


def recalculate_transaction(
    card: Card,
    transaction: Transaction,
    usage_map: dict[str, float] | None = None,
    mode: CalculationMode = CalculationMode.TRAVEL,
    calculator: RewardCalculator | None = None,
) -> Transaction:
    calculator = calculator or RewardCalculator()
    result = calculator.calculate(card, transaction, dict(usage_map or {}), mode)
    return snapshot_transaction(card, transaction, result)


def recalculate_card_transactions(
    card: Card,
    transactions: Iterable[Transaction],
    mode: CalculationMode = CalculationMode.TRAVEL,
    default_statement_date: int = DEFAULT_STATEMENT_DATE,
) -> list[Transaction]:
    """Re-derive every transaction of ``card`` from its current rules.

    Transactions are folded in ascending date order (input order breaks ties). Each
    one sees only the already re-derived transactions before it, both for its usage
    map and for cumulative spending, so once-per-period fixed rewards and cumulative
    thresholds land on the same transactions they would have in real time. Usage is
    carried forward per (rule, accrual window) instead of rescanning the prefix.
    """
    ordered = sorted((tx for tx in transactions if tx.card_id == card.id), key=lambda tx: tx.date)
    processed: list[Transaction] = []
    calculator = create_calculator_with_store(processed, card.id)
    accrued: dict[tuple[str, date, date], float] = {}

    for transaction in ordered:
        windows: dict[str, tuple[str, date, date]] = {}
        program = resolve_program(card, transaction.date)
        if program is not None:
            for rule in program.bonus_rules:
                period = usage_period_for_card(transaction.date, rule, program, card, default_statement_date)
                windows[rule.id] = (rule.id, period.start, period.end)

        usage_map = {rule_id: accrued[key] for rule_id, key in windows.items() if accrued.get(key)}
        snapshot = recalculate_transaction(card, transaction, usage_map, mode, calculator)
        for rule_id, used in snapshot.rule_usage_map.items():
            key = windows[rule_id]
            accrued[key] = accrued.get(key, 0) + used
        processed.append(snapshot)

    logger.info("Recalculated %d transaction(s) for card %s", len(processed), card.id)
    return processed


class RewardOrchestrator:
    def __init__(
        self,
        store: WalletStore,
        default_mode: CalculationMode = CalculationMode.TRAVEL,
        default_statement_date: int = DEFAULT_STATEMENT_DATE,
    ):
        self.store = store
        self.default_mode = default_mode
        self.default_statement_date = default_statement_date

    def _card(self, cards: list[Card], card_id: str) -> Card:
        card = next((card for card in cards if card.id == card_id), None)
        if card is None:
            raise LookupError(f"Unknown card: {card_id}")
        return card

    def _build_transaction(self, request: PurchaseRequest, card_id: str = "") -> Transaction:
        return Transaction(
            id=f"simulation-{uuid.uuid4().hex[:8]}",
            date=request.transaction_date or date.today(),
            amount=request.amount,
            currency=request.currency,
            exchange_rate=request.exchange_rate if request.currency == Currency.JPY else 1.0,
            category=request.category,
            merchant_name=request.merchant_name,
            payment_method=request.payment_method,
            card_id=card_id,
        )

    def calculate(
        self,
        card_id: str,
        transaction: Transaction,
        usage_map: dict[str, float] | None = None,
        mode: CalculationMode | None = None,
    ) -> CalculationResult:
        wallet = self.store.load()
        card = self._card(wallet.cards, card_id)
        history = [tx for tx in wallet.transactions if tx.id != transaction.id]

        if usage_map is None:
            usage_map = current_usage_map(card, history, transaction.date, self.default_statement_date)

        calculator = create_calculator_with_store(history, card.id)
        return calculator.calculate(card, transaction, usage_map, mode or self.default_mode)

    def simulate(self, card_id: str, request: PurchaseRequest) -> CalculationResult:
        transaction = self._build_transaction(request, card_id)
        return self.calculate(card_id, transaction, mode=request.mode)

    def recommend(self, request: PurchaseRequest) -> list[CardEvaluation]:
        wallet = self.store.load()
        cards = wallet.cards
        if request.card_ids:
            cards = [self._card(wallet.cards, card_id) for card_id in request.card_ids]
        if not cards:
            raise ValueError("No cards available.")

        transaction = self._build_transaction(request)
        return rank_cards(
            cards,
            transaction,
            mode=request.mode or self.default_mode,
            calculator_for=lambda card: create_calculator_with_store(wallet.transactions, card.id),
            usage_for=lambda card: current_usage_map(
                card, wallet.transactions, transaction.date, self.default_statement_date
            ),
        )

    def rule_progress(
        self,
        card_id: str,
        on: date | None = None,
        mode: CalculationMode | None = None,
    ) -> list[RuleProgress]:
        wallet = self.store.load()
        card = self._card(wallet.cards, card_id)
        on = on or date.today()
        allowed = ALLOWED_REGIONS[mode or self.default_mode]

        program = resolve_program(card, on)
        if program is None:
            return []

        progress = []
        for rule in program.bonus_rules:
            if not isinstance(rule, PercentageRule) or rule.cap is None:
                continue
            if (rule.region or LEGACY_RULE_REGION) not in allowed:
                continue

            period = usage_period_for_card(on, rule, program, card, self.default_statement_date)
            used = calculate_rule_usage(wallet.transactions, rule.id, card.id, period.start, period.end, rule.name)
            percent = min(100.0, used / rule.cap.amount * 100) if rule.cap.amount else 100.0
            progress.append(
                RuleProgress(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    used=used,
                    cap=rule.cap.amount,
                    currency=rule.cap.currency,
                    percent=round(percent, 2),
                    period_start=period.start,
                    period_end=period.end,
                    is_full=percent >= 100,
                )
            )
        return progress

    def recalculate_card(
        self,
        card_id: str,
        mode: CalculationMode | None = None,
        persist: bool = False,
    ) -> list[Transaction]:
        wallet = self.store.load()
        card = self._card(wallet.cards, card_id)
        recalculated = recalculate_card_transactions(
            card, wallet.transactions, mode or self.default_mode, self.default_statement_date
        )

        if persist:
            by_id = {tx.id: tx for tx in recalculated}
            self.store.save_transactions([by_id.get(tx.id, tx) for tx in wallet.transactions])

        return recalculated

    def validate_wallet(self) -> dict[str, ProgramValidation]:
        report = {card.id: validate_programs(card) for card in self.store.load_cards()}
        for card_id, validation in report.items():
            if not validation.valid:
                logger.warning("Card %s has overlapping programs: %s", card_id, validation.conflicts)
        return report
