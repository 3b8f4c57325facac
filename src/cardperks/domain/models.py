from datetime import date
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class Currency(str, Enum):
    TWD = "TWD"
    JPY = "JPY"


class Region(str, Enum):
    GLOBAL = "global"
    JAPAN = "japan"
    TAIWAN = "taiwan"


class CalculationMode(str, Enum):
    TRAVEL = "travel"
    DAILY = "daily"


class CapPeriod(str, Enum):
    MONTHLY = "monthly"
    CAMPAIGN = "campaign"


class BillingCycleType(str, Enum):
    CALENDAR = "calendar"
    STATEMENT = "statement"


class PerTransactionThreshold(BaseModel):
    type: Literal["per_transaction"] = "per_transaction"
    amount: float = Field(gt=0)
    currency: Currency = Currency.TWD


class CumulativeThreshold(BaseModel):
    type: Literal["cumulative"] = "cumulative"
    amount: float = Field(gt=0)
    currency: Currency = Currency.TWD


def _tag(field: str, default: str):
    def resolve(value: Any) -> str:
        if isinstance(value, dict):
            return value.get(field) or default
        return getattr(value, field, default)

    return resolve


MinAmount = Annotated[
    Union[
        Annotated[PerTransactionThreshold, Tag("per_transaction")],
        Annotated[CumulativeThreshold, Tag("cumulative")],
    ],
    Discriminator(_tag("type", "per_transaction")),
]


class RewardCap(BaseModel):
    amount: float = Field(ge=0)
    currency: Currency = Currency.TWD


class _RuleBase(BaseModel):
    id: str
    name: str
    region: Region | None = None
    categories: list[str] = Field(default_factory=list)
    specific_merchants: list[str] = Field(default_factory=list)
    payment_methods: list[str] = Field(default_factory=list)
    start_date: date | None = None
    end_date: date | None = None
    min_amount: MinAmount | None = None
    cap_period: CapPeriod = CapPeriod.MONTHLY
    requires_registration: bool = False
    note: str | None = None

    @property
    def is_cumulative(self) -> bool:
        return isinstance(self.min_amount, CumulativeThreshold)

    @property
    def usage_currency(self) -> Currency:
        return Currency.TWD


class PercentageRule(_RuleBase):
    reward_type: Literal["percentage"] = "percentage"
    rate: float = Field(ge=0)
    cap: RewardCap | None = None

    @property
    def usage_currency(self) -> Currency:
        return self.cap.currency if self.cap else Currency.TWD


class FixedRule(_RuleBase):
    reward_type: Literal["fixed"] = "fixed"
    fixed_reward_amount: float = Field(gt=0)
    fixed_reward_currency: Currency = Currency.JPY


BonusRule = Annotated[
    Union[
        Annotated[PercentageRule, Tag("percentage")],
        Annotated[FixedRule, Tag("fixed")],
    ],
    Discriminator(_tag("reward_type", "percentage")),
]


class Program(BaseModel):
    id: str
    card_id: str
    name: str
    start_date: date
    end_date: date
    base_rate_overseas: float = Field(default=0, ge=0)
    base_rate_domestic: float = Field(default=0, ge=0)
    bonus_rules: list[BonusRule] = Field(default_factory=list)
    note: str | None = None


class Card(BaseModel):
    id: str
    name: str
    bank: str = ""
    statement_date: int | None = Field(default=None, ge=1, le=31)
    billing_cycle_type: BillingCycleType | None = None
    foreign_tx_fee: float | None = Field(default=None, ge=0)
    supported_payment_methods: list[str] = Field(default_factory=list)
    programs: list[Program] = Field(default_factory=list)


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    date: date
    amount: float = Field(ge=0)
    currency: Currency = Currency.TWD
    exchange_rate: float = Field(default=1.0, gt=0)
    category: str = "other"
    merchant_name: str = ""
    payment_method: str = "card"
    card_id: str = ""
    program_id: str | None = None

    calculated_reward_amount: float = 0
    applied_rule_names: list[str] = Field(default_factory=list)
    # None marks records written before per-rule usage was tracked.
    rule_usage_map: dict[str, float] | None = None


class WarningCode(str, Enum):
    NO_PROGRAM = "no_program"
    PROGRAM_EXPIRED = "program_expired"
    PROGRAM_UPCOMING = "program_upcoming"
    RULE_CAPPED = "rule_capped"


class CalculationWarning(BaseModel):
    code: WarningCode
    message: str
    rule_id: str | None = None


class RuleBreakdown(BaseModel):
    rule_id: str
    rule_name: str
    amount: float
    rate: float = 0
    capped: bool = False
    cap_limit: float | None = None
    usage_amount: float | None = None
    usage_currency: Currency | None = None


class CalculationResult(BaseModel):
    card_id: str
    program_id: str | None = None
    amount_twd: float = 0
    total_reward: float = 0
    effective_rate: float = 0
    breakdown: list[RuleBreakdown] = Field(default_factory=list)
    warnings: list[CalculationWarning] = Field(default_factory=list)
    transaction_fee: float = 0
    net_reward: float = 0

    @property
    def applied_rule_names(self) -> list[str]:
        return [item.rule_name for item in self.breakdown]


class RuleProgress(BaseModel):
    rule_id: str
    rule_name: str
    used: float
    cap: float
    currency: Currency
    percent: float
    period_start: date
    period_end: date
    is_full: bool = False


class CardEvaluation(BaseModel):
    card_id: str
    card_name: str
    total_reward: float
    fee: float
    net_reward: float
    effective_rate: float
    applied_rule_names: list[str]
    warnings: list[str]
