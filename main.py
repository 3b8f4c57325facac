import argparse
import logging

from cardperks.api.app import run as run_api
from cardperks.config import settings
from cardperks.domain.models import CalculationMode
from cardperks.repository.wallet_store import WalletStore
from cardperks.services.orchestrator import RewardOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CardPerks unified entrypoint")
    parser.add_argument(
        "command",
        nargs="?",
        choices=["api", "validate", "recalculate"],
        default="api",
        help="Run mode: api (default), validate, recalculate",
    )
    parser.add_argument("--wallet", default=settings.wallet_file, help="Wallet JSON file")
    parser.add_argument("--card", action="append", dest="cards", help="Card id to recalculate (repeatable)")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in CalculationMode],
        default=settings.default_mode.value,
        help="Calculation mode for recalculation",
    )
    parser.add_argument("--persist", action="store_true", help="Write recalculated transactions back")
    return parser


def _orchestrator(wallet_file: str) -> RewardOrchestrator:
    return RewardOrchestrator(
        WalletStore(wallet_file),
        default_mode=settings.default_mode,
        default_statement_date=settings.default_statement_date,
    )


def validate(wallet_file: str) -> None:
    for card_id, report in _orchestrator(wallet_file).validate_wallet().items():
        if report.valid:
            print(f"{card_id}: ok")
            continue
        print(f"{card_id}: overlapping programs")
        for conflict in report.conflicts:
            print(f"- {conflict.p1} <-> {conflict.p2}")


def recalculate(wallet_file: str, card_ids: list[str] | None, mode: str, persist: bool) -> None:
    orchestrator = _orchestrator(wallet_file)
    card_ids = card_ids or [card.id for card in orchestrator.store.load_cards()]

    for card_id in card_ids:
        transactions = orchestrator.recalculate_card(card_id, CalculationMode(mode), persist=persist)
        print(f"{card_id}: {len(transactions)} transaction(s)")
        for tx in transactions:
            rules = ", ".join(tx.applied_rule_names) or "-"
            print(f"- {tx.date} {tx.merchant_name or tx.id}: {tx.calculated_reward_amount:.0f} TWD ({rules})")


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "api":
        run_api()
        return

    if args.command == "validate":
        validate(args.wallet)
        return

    recalculate(args.wallet, args.cards, args.mode, args.persist)


if __name__ == "__main__":
    main()
