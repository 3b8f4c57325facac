from datetime import date

from pydantic import BaseModel, Field

from cardperks.domain.models import CalculationMode, Currency, Transaction


class PurchaseRequest(BaseModel):
    amount: float = Field(ge=0)
    currency: Currency = Currency.TWD
    exchange_rate: float = Field(default=1.0, gt=0)
    category: str = "other"
    merchant_name: str = ""
    payment_method: str = "card"
    transaction_date: date | None = None
    mode: CalculationMode | None = None
    card_ids: list[str] | None = None


class SimulateRequest(PurchaseRequest):
    card_id: str


class CalculateRequest(BaseModel):
    card_id: str
    transaction: Transaction
    usage_map: dict[str, float] | None = None
    mode: CalculationMode | None = None


class RecalculateRequest(BaseModel):
    mode: CalculationMode | None = None
    persist: bool = False
