from cardperks.config import settings
from cardperks.repository.wallet_store import WalletStore
from cardperks.services.orchestrator import RewardOrchestrator


def get_orchestrator() -> RewardOrchestrator:
    return RewardOrchestrator(
        WalletStore(settings.wallet_file),
        default_mode=settings.default_mode,
        default_statement_date=settings.default_statement_date,
    )
