import json
from datetime import date

import pytest

from cardperks.domain.models import CalculationMode, Currency
from cardperks.engine.calculator import RewardCalculator
from cardperks.repository.wallet_store import Wallet, WalletStore
from cardperks.schemas.requests import PurchaseRequest
from cardperks.services.orchestrator import (
    RewardOrchestrator,
    recalculate_card_transactions,
    recalculate_transaction,
    rule_usage_from_result,
)
from factories import make_card, make_program, make_rule, make_transaction


def _capped_card():
    rule = make_rule(id="cap-rule", name="Capped Bonus", rate=0.1, cap={"amount": 300})
    program = make_program(base_rate_overseas=0.01, bonus_rules=[rule])
    return make_card([program], billing_cycle_type="calendar")


@pytest.fixture
def wallet_file(tmp_path):
    card = _capped_card()
    history = [
        make_transaction(id="h1", date=date(2024, 6, 3), rule_usage_map={"cap-rule": 220}),
        make_transaction(id="h2", date=date(2024, 5, 20), rule_usage_map={"cap-rule": 220}),
    ]
    path = tmp_path / "wallet.json"
    path.write_text(Wallet(cards=[card], transactions=history).model_dump_json(), encoding="utf-8")
    return path


def test_rule_usage_skips_base_entry() -> None:
    card = _capped_card()

    result = RewardCalculator().calculate(card, make_transaction(), {"cap-rule": 250})

    assert rule_usage_from_result(result) == {"cap-rule": 50}


def test_recalculate_transaction_snapshots_result() -> None:
    card = _capped_card()
    tx = make_transaction(card_id="", program_id=None)

    snapshot = recalculate_transaction(card, tx, {}, CalculationMode.TRAVEL)

    assert snapshot.card_id == "card-1"
    assert snapshot.program_id == "prog-1"
    assert snapshot.calculated_reward_amount == 22 + 220
    assert snapshot.applied_rule_names == ["Overseas base reward", "Capped Bonus"]
    assert snapshot.rule_usage_map == {"cap-rule": 220}
    assert tx.rule_usage_map is None


def test_recalculate_card_threads_usage_within_each_period() -> None:
    card = _capped_card()
    transactions = [
        make_transaction(id="jan-2", date=date(2024, 1, 20)),
        make_transaction(id="jan-1", date=date(2024, 1, 10)),
        make_transaction(id="feb-1", date=date(2024, 2, 1)),
        make_transaction(id="other", card_id="card-2", date=date(2024, 1, 1)),
    ]

    recalculated = recalculate_card_transactions(card, transactions)

    assert [tx.id for tx in recalculated] == ["jan-1", "jan-2", "feb-1"]
    assert [tx.rule_usage_map["cap-rule"] for tx in recalculated] == [220, 80, 220]


def test_simulate_uses_current_period_usage(wallet_file) -> None:
    orchestrator = RewardOrchestrator(WalletStore(wallet_file))
    request = PurchaseRequest(
        amount=10000,
        currency=Currency.JPY,
        exchange_rate=0.22,
        category="general_japan",
        transaction_date=date(2024, 6, 15),
    )

    result = orchestrator.simulate("card-1", request)

    capped = result.breakdown[-1]
    assert capped.rule_id == "cap-rule"
    assert capped.amount == 80
    assert capped.capped


def test_calculate_with_explicit_usage_map(wallet_file) -> None:
    orchestrator = RewardOrchestrator(WalletStore(wallet_file))

    result = orchestrator.calculate("card-1", make_transaction(), usage_map={})

    assert result.total_reward == 22 + 220


def test_unknown_card_raises_lookup_error(wallet_file) -> None:
    orchestrator = RewardOrchestrator(WalletStore(wallet_file))

    with pytest.raises(LookupError):
        orchestrator.simulate("missing", PurchaseRequest(amount=100))


def test_recommend_requires_cards(tmp_path) -> None:
    path = tmp_path / "empty.json"
    path.write_text(json.dumps({"cards": [], "transactions": []}), encoding="utf-8")

    with pytest.raises(ValueError):
        RewardOrchestrator(WalletStore(path)).recommend(PurchaseRequest(amount=100))


def test_rule_progress_reports_current_period(wallet_file) -> None:
    orchestrator = RewardOrchestrator(WalletStore(wallet_file))

    progress = orchestrator.rule_progress("card-1", date(2024, 6, 15), CalculationMode.TRAVEL)

    assert len(progress) == 1
    assert progress[0].used == 220
    assert progress[0].cap == 300
    assert progress[0].percent == pytest.approx(73.33)
    assert progress[0].period_start == date(2024, 6, 1)
    assert not progress[0].is_full


def test_rule_progress_hides_rules_outside_mode(wallet_file) -> None:
    orchestrator = RewardOrchestrator(WalletStore(wallet_file))

    assert orchestrator.rule_progress("card-1", date(2024, 6, 15), CalculationMode.DAILY) == []


def test_recalculate_card_persists_snapshots(wallet_file) -> None:
    store = WalletStore(wallet_file)

    RewardOrchestrator(store).recalculate_card("card-1", persist=True)

    saved = {tx.id: tx for tx in store.load_transactions()}
    assert saved["h2"].rule_usage_map == {"cap-rule": 220}
    assert saved["h1"].rule_usage_map == {"cap-rule": 220}
    assert saved["h1"].calculated_reward_amount == 22 + 220


def test_validate_wallet_flags_overlaps(tmp_path) -> None:
    overlapping = make_card(
        [
            make_program(id="a", name="A", start_date="2024-01-01", end_date="2024-06-30"),
            make_program(id="b", name="B", start_date="2024-06-01", end_date="2024-12-31"),
        ],
        id="overlap",
    )
    path = tmp_path / "wallet.json"
    path.write_text(Wallet(cards=[_capped_card(), overlapping]).model_dump_json(), encoding="utf-8")

    report = RewardOrchestrator(WalletStore(path)).validate_wallet()

    assert report["card-1"].valid
    assert not report["overlap"].valid


def test_missing_wallet_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        WalletStore(tmp_path / "nope.json").load()
