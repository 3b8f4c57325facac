import pytest
from pydantic import TypeAdapter, ValidationError

from cardperks.domain.models import (
    BonusRule,
    Card,
    Currency,
    CumulativeThreshold,
    FixedRule,
    PercentageRule,
    PerTransactionThreshold,
    Transaction,
)

RULE = TypeAdapter(BonusRule)


def test_rule_without_reward_type_is_percentage() -> None:
    rule = RULE.validate_python({"id": "r", "name": "Legacy", "rate": 0.03})

    assert isinstance(rule, PercentageRule)
    assert rule.region is None
    assert rule.usage_currency == Currency.TWD


def test_fixed_rule_parses_and_has_no_cap() -> None:
    rule = RULE.validate_python(
        {
            "id": "r",
            "name": "Spend bonus",
            "reward_type": "fixed",
            "fixed_reward_amount": 10000,
            "min_amount": {"type": "cumulative", "amount": 100000, "currency": "JPY"},
        }
    )

    assert isinstance(rule, FixedRule)
    assert rule.fixed_reward_currency == Currency.JPY
    assert isinstance(rule.min_amount, CumulativeThreshold)
    assert rule.is_cumulative
    assert not hasattr(rule, "cap")


def test_threshold_without_type_is_per_transaction() -> None:
    rule = RULE.validate_python({"id": "r", "name": "Min", "rate": 0.01, "min_amount": {"amount": 500}})

    assert isinstance(rule.min_amount, PerTransactionThreshold)
    assert rule.min_amount.currency == Currency.TWD
    assert not rule.is_cumulative


def test_percentage_usage_currency_follows_cap() -> None:
    rule = RULE.validate_python(
        {"id": "r", "name": "Cap", "rate": 0.05, "cap": {"amount": 1000, "currency": "JPY"}}
    )

    assert rule.usage_currency == Currency.JPY


def test_unknown_reward_type_is_rejected() -> None:
    with pytest.raises(ValidationError):
        RULE.validate_python({"id": "r", "name": "Odd", "reward_type": "miles", "rate": 0.01})


def test_statement_date_must_be_a_day_of_month() -> None:
    with pytest.raises(ValidationError):
        Card(id="c", name="Card", statement_date=32)


def test_transaction_rejects_negative_amount_and_zero_rate() -> None:
    with pytest.raises(ValidationError):
        Transaction(id="t", date="2024-01-01", amount=-1)
    with pytest.raises(ValidationError):
        Transaction(id="t", date="2024-01-01", amount=1, exchange_rate=0)


def test_transaction_is_immutable() -> None:
    tx = Transaction(id="t", date="2024-01-01", amount=100)

    with pytest.raises(ValidationError):
        tx.amount = 200

