"""
Pydantic models for the financial event timeline.

A plan is an ordered list of FinancialEvent records. FinancialEvent is a
closed discriminated union keyed on ``type``: every EventType tag belongs to
exactly one variant model, and each variant carries its own typed fields.
Strategy bookkeeping lives in a typed StrategyMetadata record that also
accepts strategy-specific extra keys.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from .schedule import ScheduleConfig


class EventType(str, Enum):
    """Type tag of a financial event."""

    # Income and expenses
    INCOME = "INCOME"
    RECURRING_EXPENSE = "RECURRING_EXPENSE"
    ONE_TIME_EVENT = "ONE_TIME_EVENT"
    SOCIAL_SECURITY_INCOME = "SOCIAL_SECURITY_INCOME"
    PENSION_INCOME = "PENSION_INCOME"
    ANNUITY_PAYMENT = "ANNUITY_PAYMENT"
    RENTAL_INCOME = "RENTAL_INCOME"
    DIVIDEND_INCOME = "DIVIDEND_INCOME"
    BUSINESS_INCOME = "BUSINESS_INCOME"
    INHERITANCE = "INHERITANCE"
    HEALTHCARE_COST = "HEALTHCARE_COST"
    TUITION_PAYMENT = "TUITION_PAYMENT"
    INSURANCE_PREMIUM = "INSURANCE_PREMIUM"
    QUARTERLY_ESTIMATED_TAX_PAYMENT = "QUARTERLY_ESTIMATED_TAX_PAYMENT"
    VEHICLE_PURCHASE = "VEHICLE_PURCHASE"
    HOME_IMPROVEMENT = "HOME_IMPROVEMENT"
    CASHFLOW_INCOME = "CASHFLOW_INCOME"
    CASHFLOW_EXPENSE = "CASHFLOW_EXPENSE"

    # Contributions
    SCHEDULED_CONTRIBUTION = "SCHEDULED_CONTRIBUTION"
    ACCOUNT_CONTRIBUTION = "ACCOUNT_CONTRIBUTION"
    PERCENTAGE_CONTRIBUTION = "PERCENTAGE_CONTRIBUTION"
    CONDITIONAL_CONTRIBUTION = "CONDITIONAL_CONTRIBUTION"
    GOAL_DRIVEN_CONTRIBUTION = "GOAL_DRIVEN_CONTRIBUTION"
    WATERFALL_ALLOCATION = "WATERFALL_ALLOCATION"
    FIVE_TWO_NINE_CONTRIBUTION = "FIVE_TWO_NINE_CONTRIBUTION"
    MEGA_BACKDOOR_ROTH = "MEGA_BACKDOOR_ROTH"

    # Conversions, withdrawals and transfers
    ROTH_CONVERSION = "ROTH_CONVERSION"
    WITHDRAWAL = "WITHDRAWAL"
    ACCOUNT_TRANSFER = "ACCOUNT_TRANSFER"
    REQUIRED_MINIMUM_DISTRIBUTION = "REQUIRED_MINIMUM_DISTRIBUTION"
    QUALIFIED_CHARITABLE_DISTRIBUTION = "QUALIFIED_CHARITABLE_DISTRIBUTION"
    FIVE_TWO_NINE_WITHDRAWAL = "FIVE_TWO_NINE_WITHDRAWAL"
    TAX_LOSS_HARVESTING_SALE = "TAX_LOSS_HARVESTING_SALE"

    # Liabilities
    LIABILITY_ADD = "LIABILITY_ADD"
    LIABILITY = "LIABILITY"
    LIABILITY_PAYMENT = "LIABILITY_PAYMENT"
    DEBT_PAYMENT = "DEBT_PAYMENT"
    SMART_DEBT_PAYMENT = "SMART_DEBT_PAYMENT"

    # Asset allocation
    STRATEGY_ASSET_ALLOCATION_SET = "STRATEGY_ASSET_ALLOCATION_SET"
    STRATEGY_REBALANCING_RULE_SET = "STRATEGY_REBALANCING_RULE_SET"
    REBALANCE_PORTFOLIO = "REBALANCE_PORTFOLIO"
    AUTOMATIC_REBALANCING = "AUTOMATIC_REBALANCING"
    LIFECYCLE_ADJUSTMENT = "LIFECYCLE_ADJUSTMENT"

    # Planning
    GOAL_DEFINE = "GOAL_DEFINE"
    FINANCIAL_MILESTONE = "FINANCIAL_MILESTONE"
    STRATEGY_POLICY = "STRATEGY_POLICY"
    CAREER_CHANGE = "CAREER_CHANGE"
    FAMILY_EVENT = "FAMILY_EVENT"
    RELOCATION = "RELOCATION"


CashFlowType = Literal[
    EventType.INCOME,
    EventType.RECURRING_EXPENSE,
    EventType.ONE_TIME_EVENT,
    EventType.SOCIAL_SECURITY_INCOME,
    EventType.PENSION_INCOME,
    EventType.ANNUITY_PAYMENT,
    EventType.RENTAL_INCOME,
    EventType.DIVIDEND_INCOME,
    EventType.BUSINESS_INCOME,
    EventType.INHERITANCE,
    EventType.HEALTHCARE_COST,
    EventType.TUITION_PAYMENT,
    EventType.INSURANCE_PREMIUM,
    EventType.QUARTERLY_ESTIMATED_TAX_PAYMENT,
    EventType.VEHICLE_PURCHASE,
    EventType.HOME_IMPROVEMENT,
    EventType.CASHFLOW_INCOME,
    EventType.CASHFLOW_EXPENSE,
]

ContributionType = Literal[
    EventType.SCHEDULED_CONTRIBUTION,
    EventType.ACCOUNT_CONTRIBUTION,
    EventType.PERCENTAGE_CONTRIBUTION,
    EventType.CONDITIONAL_CONTRIBUTION,
    EventType.GOAL_DRIVEN_CONTRIBUTION,
    EventType.WATERFALL_ALLOCATION,
    EventType.FIVE_TWO_NINE_CONTRIBUTION,
    EventType.MEGA_BACKDOOR_ROTH,
]

TransferType = Literal[
    EventType.ROTH_CONVERSION,
    EventType.WITHDRAWAL,
    EventType.ACCOUNT_TRANSFER,
    EventType.REQUIRED_MINIMUM_DISTRIBUTION,
    EventType.QUALIFIED_CHARITABLE_DISTRIBUTION,
    EventType.FIVE_TWO_NINE_WITHDRAWAL,
    EventType.TAX_LOSS_HARVESTING_SALE,
]

LiabilityType = Literal[EventType.LIABILITY_ADD, EventType.LIABILITY]

LiabilityPaymentType = Literal[
    EventType.LIABILITY_PAYMENT,
    EventType.DEBT_PAYMENT,
    EventType.SMART_DEBT_PAYMENT,
]

AllocationType = Literal[
    EventType.STRATEGY_ASSET_ALLOCATION_SET,
    EventType.STRATEGY_REBALANCING_RULE_SET,
    EventType.REBALANCE_PORTFOLIO,
    EventType.AUTOMATIC_REBALANCING,
    EventType.LIFECYCLE_ADJUSTMENT,
]

MilestoneType = Literal[
    EventType.GOAL_DEFINE,
    EventType.FINANCIAL_MILESTONE,
    EventType.STRATEGY_POLICY,
    EventType.CAREER_CHANGE,
    EventType.FAMILY_EVENT,
    EventType.RELOCATION,
]

EventFrequency = Literal["one_time", "monthly", "quarterly", "annually"]

ImportanceLevel = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW"]


def new_event_id(prefix: str = "evt") -> str:
    """Generate a fresh event identifier."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class StrategyMetadata(BaseModel):
    """Bookkeeping attached to events, used to recognise strategy output.

    Strategy-specific keys (e.g. ``glide_path_type``) are accepted as extras.
    """

    model_config = ConfigDict(extra="allow")

    strategy_id: Optional[str] = Field(
        default=None, description="Id of the strategy that produced the event"
    )
    account_preference: Optional[str] = Field(
        default=None, description="Account tag used to match re-runs (401k, ira, ...)"
    )
    is_auto_generated: bool = Field(
        default=False, description="Whether the event was created automatically"
    )
    automation_type: Optional[str] = Field(
        default=None, description="Kind of automation that created the event"
    )
    last_updated: Optional[datetime] = Field(
        default=None, description="When a strategy last modified the event"
    )
    notes: Optional[str] = Field(default=None, description="Free-form notes")


class AssetMix(BaseModel):
    """Target portfolio weights by asset class."""

    weights: Dict[str, float] = Field(..., description="Weight per asset class (0-1)")

    @model_validator(mode="after")
    def validate_weights(self):
        for name, weight in self.weights.items():
            if not 0 <= weight <= 1:
                raise ValueError(f"Weight for {name} must be between 0 and 1, got {weight}")
        total = sum(self.weights.values())
        if abs(total - 1.0) > 0.001:
            raise ValueError(f"Asset allocation must sum to 1.0, got {total}")
        return self

    def weight(self, asset: str) -> float:
        return self.weights.get(asset, 0.0)


class BaseEvent(BaseModel):
    """Fields shared by every event variant."""

    id: str = Field(default_factory=new_event_id, description="Unique event id")
    name: str = Field(default="", description="Display name")
    description: Optional[str] = Field(default=None, description="Event description")
    month_offset: int = Field(
        default=0, description="Months from the plan start (negative = past)"
    )
    start_date: Optional[date] = Field(default=None, description="Calendar date")
    amount: float = Field(default=0.0, description="Monetary amount")
    frequency: EventFrequency = Field(default="one_time", description="Recurrence")
    priority: Optional[int] = Field(
        default=None, description="Processing priority within a month"
    )
    tags: List[str] = Field(default_factory=list, description="Free-form tags")
    metadata: StrategyMetadata = Field(
        default_factory=StrategyMetadata, description="Strategy bookkeeping"
    )
    schedule: Optional[ScheduleConfig] = Field(
        default=None, description="Schedule template, removed on expansion"
    )

    @property
    def account_tag(self) -> Optional[str]:
        """Account tag used to match re-runs of the same strategy."""
        return self.metadata.account_preference or getattr(
            self, "target_account_type", None
        )

    @property
    def strategy_key(self) -> Tuple[str, Optional[str], Optional[str]]:
        """Stable identity of strategy output: (type, strategy id, account tag)."""
        return (_type_value(self.type), self.metadata.strategy_id, self.account_tag)

    @property
    def is_strategy_event(self) -> bool:
        return self.metadata.strategy_id is not None


class CashFlowEvent(BaseEvent):
    """Income or expense."""

    type: CashFlowType
    target_account_type: Optional[str] = Field(
        default=None, description="Account receiving or paying the money"
    )
    annual_growth_rate: float = Field(
        default=0.0, ge=-1, le=1, description="Yearly growth of the amount"
    )
    end_date_offset: Optional[int] = Field(
        default=None, description="Month offset of the last occurrence"
    )


class ContributionEvent(BaseEvent):
    """Money added to an investment account."""

    type: ContributionType
    target_account_type: str = Field(..., description="Account receiving the money")
    end_date_offset: Optional[int] = Field(
        default=None, description="Month offset of the last occurrence"
    )


class TransferEvent(BaseEvent):
    """Conversion, withdrawal or transfer between accounts."""

    type: TransferType
    from_account_type: Optional[str] = Field(default=None, description="Source account")
    target_account_type: Optional[str] = Field(
        default=None, description="Destination account"
    )


class LiabilityEvent(BaseEvent):
    """A debt added to the plan."""

    type: LiabilityType
    principal: float = Field(default=0.0, ge=0, description="Original principal")
    balance: float = Field(default=0.0, ge=0, description="Current balance")
    annual_interest_rate: float = Field(
        default=0.0, ge=0, le=1, description="Annual interest rate (decimal)"
    )
    monthly_payment: float = Field(default=0.0, ge=0, description="Minimum payment")

    @property
    def outstanding_balance(self) -> float:
        """Current balance, falling back to the original principal."""
        return self.balance or self.principal


class LiabilityPaymentEvent(BaseEvent):
    """Recurring payment against a liability."""

    type: LiabilityPaymentType
    liability_name: str = Field(default="", description="Name of the liability paid")
    start_date_offset: int = Field(default=0, description="First payment month")
    end_date_offset: Optional[int] = Field(
        default=None, description="Last payment month"
    )


class AllocationEvent(BaseEvent):
    """Portfolio allocation target or rebalancing rule."""

    type: AllocationType
    allocation: AssetMix = Field(..., description="Target weights")
    target_account_type: Optional[str] = Field(
        default=None, description="Account the allocation applies to"
    )


class MilestoneEvent(BaseEvent):
    """Planning milestone with no cash impact of its own."""

    type: MilestoneType
    target_amount: Optional[float] = Field(default=None, description="Goal amount")


FinancialEvent = Annotated[
    Union[
        CashFlowEvent,
        ContributionEvent,
        TransferEvent,
        LiabilityEvent,
        LiabilityPaymentEvent,
        AllocationEvent,
        MilestoneEvent,
    ],
    Field(discriminator="type"),
]

EVENT_VARIANTS = {
    CashFlowEvent: CashFlowType,
    ContributionEvent: ContributionType,
    TransferEvent: TransferType,
    LiabilityEvent: LiabilityType,
    LiabilityPaymentEvent: LiabilityPaymentType,
    AllocationEvent: AllocationType,
    MilestoneEvent: MilestoneType,
}

_event_adapter = TypeAdapter(FinancialEvent)
_event_list_adapter = TypeAdapter(List[FinancialEvent])


def _type_value(event_type: Any) -> str:
    return event_type.value if isinstance(event_type, EventType) else str(event_type)


def variant_for(event_type: Union[EventType, str]) -> type:
    """Return the variant model that owns an event type tag."""
    tag = EventType(event_type)
    for model, literal in EVENT_VARIANTS.items():
        if tag in get_args(literal):
            return model
    raise ValueError(f"No event variant for type {tag.value}")


def parse_event(data: Dict[str, Any]):
    """Validate a dict into the matching FinancialEvent variant."""
    return _event_adapter.validate_python(data)


def parse_events(data: List[Dict[str, Any]]) -> list:
    """Validate a list of dicts into FinancialEvent variants."""
    return _event_list_adapter.validate_python(data)


def dump_events(events) -> List[Dict[str, Any]]:
    """Serialize events into JSON-compatible dicts."""
    return [event.model_dump(mode="json") for event in events]
