from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cardperks.domain.models import CalculationMode


class Settings(BaseSettings):
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    wallet_file: str = "data/wallet/sample_wallet.json"

    default_mode: CalculationMode = CalculationMode.TRAVEL
    default_statement_date: int = Field(default=27, ge=1, le=31)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CARDPERKS_",
        extra="ignore",
    )


settings = Settings()
