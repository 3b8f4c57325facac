import calendar
import logging
from datetime import date, timedelta
from typing import Iterable

from pydantic import BaseModel

from cardperks.domain.models import (
    BillingCycleType,
    BonusRule,
    CapPeriod,
    Card,
    PercentageRule,
    Program,
    Transaction,
)

logger = logging.getLogger(__name__)

DEFAULT_STATEMENT_DATE = 27


class UsagePeriod(BaseModel):
    start: date
    end: date


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def _closing_day(year: int, month: int, statement_date: int) -> date:
    # Cycles close on the last day of short months when the statement day does not exist.
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(statement_date, last_day))


def _transaction_usage(transaction: Transaction, rule_id: str, rule_name: str | None) -> float:
    if transaction.rule_usage_map is not None:
        return transaction.rule_usage_map.get(rule_id, 0)
    if rule_name and rule_name in transaction.applied_rule_names:
        return transaction.amount
    return 0


def calculate_rule_usage(
    transactions: Iterable[Transaction],
    rule_id: str,
    card_id: str,
    period_start: date,
    period_end: date,
    rule_name: str | None = None,
) -> float:
    """Sum one rule's contributions from a card's transactions inside an inclusive window.

    Records without a ``rule_usage_map`` predate per-rule tracking; for those the whole
    transaction amount is counted when ``rule_name`` appears in ``applied_rule_names``.
    """
    return sum(
        _transaction_usage(transaction, rule_id, rule_name)
        for transaction in transactions
        if transaction.card_id == card_id and period_start <= transaction.date <= period_end
    )


def get_usage_period(
    target_date: date,
    rule: BonusRule,
    program: Program,
    statement_date: int = DEFAULT_STATEMENT_DATE,
    billing_cycle_type: BillingCycleType = BillingCycleType.CALENDAR,
) -> UsagePeriod:
    """Resolve the accrual window a rule's cap or threshold is tracked over.

    Campaign rules use the program's own window. Otherwise a calendar cycle is the
    target date's month, and a statement cycle runs from the day after one statement
    date through the next.
    """
    if rule.cap_period == CapPeriod.CAMPAIGN:
        return UsagePeriod(start=program.start_date, end=program.end_date)

    year, month = target_date.year, target_date.month

    if billing_cycle_type == BillingCycleType.CALENDAR:
        last_day = calendar.monthrange(year, month)[1]
        return UsagePeriod(start=date(year, month, 1), end=date(year, month, last_day))

    this_close = _closing_day(year, month, statement_date)
    if target_date > this_close:
        next_year, next_month = _shift_month(year, month, 1)
        return UsagePeriod(
            start=this_close + timedelta(days=1),
            end=_closing_day(next_year, next_month, statement_date),
        )

    prev_year, prev_month = _shift_month(year, month, -1)
    return UsagePeriod(
        start=_closing_day(prev_year, prev_month, statement_date) + timedelta(days=1),
        end=this_close,
    )


def usage_period_for_card(
    target_date: date,
    rule: BonusRule,
    program: Program,
    card: Card,
    default_statement_date: int = DEFAULT_STATEMENT_DATE,
) -> UsagePeriod:
    """Accrual window of ``rule`` on ``card``.

    Cumulative percentage rules pay the marginal reward on spending accumulated over
    the whole program, so what they have already paid is tracked over that same window
    whatever their cap period.
    """
    if isinstance(rule, PercentageRule) and rule.is_cumulative:
        return UsagePeriod(start=program.start_date, end=program.end_date)

    return get_usage_period(
        target_date,
        rule,
        program,
        statement_date=card.statement_date or default_statement_date,
        billing_cycle_type=card.billing_cycle_type or BillingCycleType.CALENDAR,
    )


def build_usage_map(
    transactions: Iterable[Transaction],
    card: Card,
    program: Program,
    target_date: date,
    default_statement_date: int = DEFAULT_STATEMENT_DATE,
) -> dict[str, float]:
    """Usage of every bonus rule of ``program`` in the accrual period holding ``target_date``."""
    history = list(transactions)
    usage_map: dict[str, float] = {}
    for rule in program.bonus_rules:
        period = usage_period_for_card(target_date, rule, program, card, default_statement_date)
        used = calculate_rule_usage(history, rule.id, card.id, period.start, period.end, rule.name)
        if used:
            usage_map[rule.id] = used

    logger.debug("Built usage map for card %s on %s: %s", card.id, target_date, usage_map)
    return usage_map
