import math
from datetime import date
from typing import Callable, Iterable, Protocol

from cardperks.domain.models import Currency, Transaction


class CumulativeSpendingCalculator(Protocol):
    def __call__(
        self,
        exclude_tx_id: str,
        period_start: date,
        period_end: date,
        currency: Currency,
    ) -> float: ...


def amount_in_currency(transaction: Transaction, currency: Currency) -> float:
    if transaction.currency == currency:
        return transaction.amount
    if currency == Currency.JPY:
        return math.floor(transaction.amount / transaction.exchange_rate)
    return math.floor(transaction.amount * transaction.exchange_rate)


def make_cumulative_calculator(
    get_transactions: Callable[[], Iterable[Transaction]],
    card_id: str | None = None,
) -> CumulativeSpendingCalculator:
    """Cumulative spending over a transaction source, optionally limited to one card.

    ``get_transactions`` is called on every lookup so the calculator always sees the
    caller's current history.
    """

    def cumulative_spending(
        exclude_tx_id: str,
        period_start: date,
        period_end: date,
        currency: Currency,
    ) -> float:
        return sum(
            amount_in_currency(transaction, currency)
            for transaction in get_transactions()
            if transaction.id != exclude_tx_id
            and (card_id is None or transaction.card_id == card_id)
            and period_start <= transaction.date <= period_end
        )

    return cumulative_spending
