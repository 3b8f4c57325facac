import shutil
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from cardperks.api.app import app
from cardperks.api.dependencies import get_orchestrator
from cardperks.repository.wallet_store import WalletStore
from cardperks.services.orchestrator import RewardOrchestrator

SAMPLE_WALLET = Path(__file__).resolve().parents[1] / "data" / "wallet" / "sample_wallet.json"


@pytest.fixture
def client(tmp_path):
    wallet = tmp_path / "wallet.json"
    shutil.copy(SAMPLE_WALLET, wallet)
    app.dependency_overrides[get_orchestrator] = lambda: RewardOrchestrator(WalletStore(wallet))
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_recommend_ranks_by_net_reward(client) -> None:
    response = client.post(
        "/recommend",
        json={
            "amount": 10000,
            "currency": "JPY",
            "exchange_rate": 0.22,
            "category": "general_japan",
            "merchant_name": "Uniqlo",
            "transaction_date": "2025-10-15",
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["best_card"]["card_id"] == "jcb-jihe"
    assert [card["card_id"] for card in payload["ranked_cards"]] == ["jcb-jihe", "fubon-j", "cathay-cube"]


def test_recommend_unknown_card_is_404(client) -> None:
    response = client.post("/recommend", json={"amount": 100, "card_ids": ["nope"]})

    assert response.status_code == 404


def test_calculate_returns_breakdown(client) -> None:
    response = client.post(
        "/calculate",
        json={
            "card_id": "fubon-j",
            "mode": "travel",
            "transaction": {
                "id": "new",
                "date": "2025-10-15",
                "amount": 10000,
                "currency": "JPY",
                "exchange_rate": 0.22,
                "category": "convenience",
                "merchant_name": "Lawson Shinjuku",
            },
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["program_id"] == "fubon-j-2025-h2"
    assert payload["total_reward"] == 22 + 44 + 66
    assert payload["transaction_fee"] == 33
    assert payload["net_reward"] == 132 - 33


def test_simulate_after_program_end_warns(client) -> None:
    response = client.post(
        "/simulate",
        json={"card_id": "cathay-cube", "amount": 1000, "transaction_date": "2026-02-01", "mode": "daily"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["program_id"] == "cube-2025"
    assert payload["warnings"][0]["code"] == "program_expired"
    assert payload["transaction_fee"] == 0


def test_progress_endpoint(client) -> None:
    response = client.get("/cards/jcb-jihe/progress", params={"on": "2025-10-20"})

    assert response.status_code == 200
    rules = response.json()["rules"]
    assert rules[0]["rule_id"] == "jcb-japan-bonus"
    assert rules[0]["used"] == 44


def test_validation_endpoint(client) -> None:
    response = client.get("/cards/validation")

    assert response.status_code == 200
    assert all(report["valid"] for report in response.json()["cards"].values())


def test_recalculate_endpoint_backfills_legacy_usage(client) -> None:
    response = client.post("/cards/jcb-jihe/recalculate", json={"mode": "travel"})

    assert response.status_code == 200
    transactions = {tx["id"]: tx for tx in response.json()["transactions"]}
    assert transactions["t-legacy-1"]["rule_usage_map"] == {"jcb-japan-bonus": 16}
    assert transactions["t-2"]["calculated_reward_amount"] == 154
