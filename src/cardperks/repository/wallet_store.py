import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field

from cardperks.domain.models import Card, Transaction

logger = logging.getLogger(__name__)


class Wallet(BaseModel):
    cards: list[Card] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)


class WalletStore:
    def __init__(self, wallet_file: str | Path):
        self.wallet_file = Path(wallet_file)

    def load(self) -> Wallet:
        if not self.wallet_file.exists():
            raise FileNotFoundError(f"Wallet file not found: {self.wallet_file}")

        with self.wallet_file.open("r", encoding="utf-8") as fh:
            data = json.load(fh)

        wallet = Wallet.model_validate(data)
        logger.info(
            "Loaded %d card(s) and %d transaction(s) from %s",
            len(wallet.cards),
            len(wallet.transactions),
            self.wallet_file,
        )
        return wallet

    def load_cards(self) -> list[Card]:
        return self.load().cards

    def load_transactions(self) -> list[Transaction]:
        return self.load().transactions

    def save_transactions(self, transactions: list[Transaction]) -> None:
        wallet = self.load()
        wallet.transactions = transactions

        with self.wallet_file.open("w", encoding="utf-8") as fh:
            fh.write(wallet.model_dump_json(indent=2))

        logger.info("Saved %d transaction(s) to %s", len(transactions), self.wallet_file)
