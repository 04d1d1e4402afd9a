"""
Pydantic models for the strategy contract.

Strategy definitions, the execution context handed to strategies, and the
result records strategies return (generated and modified events,
recommendations, impact estimates and policy summaries).
"""

from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .events import FinancialEvent, ImportanceLevel, new_event_id
from .simulation import BlockedOutput


class StrategyCategory(str, Enum):
    """Catalog grouping of strategies."""

    DEBT_PAYOFF = "DEBT_PAYOFF"
    RETIREMENT_OPTIMIZATION = "RETIREMENT_OPTIMIZATION"
    TAX_OPTIMIZATION = "TAX_OPTIMIZATION"
    EMERGENCY_FUND = "EMERGENCY_FUND"
    INVESTMENT_STRATEGY = "INVESTMENT_STRATEGY"
    REAL_ESTATE = "REAL_ESTATE"
    COLLEGE_PLANNING = "COLLEGE_PLANNING"
    BUSINESS_STRATEGY = "BUSINESS_STRATEGY"
    ESTATE_PLANNING = "ESTATE_PLANNING"
    INSURANCE_OPTIMIZATION = "INSURANCE_OPTIMIZATION"


PriorityLevel = Literal["HIGH", "MEDIUM", "LOW"]
DifficultyLevel = Literal["BEGINNER", "INTERMEDIATE", "ADVANCED"]
ParameterType = Literal["number", "percentage", "boolean", "selection", "text"]


# ---------------------------------------------------------------------------
# Definitions and parameters
# ---------------------------------------------------------------------------


class ParameterOption(BaseModel):
    """One choice of a selection parameter."""

    model_config = ConfigDict(frozen=True)

    value: Any = Field(..., description="Submitted value")
    label: str = Field(..., description="Display label")


class ParameterSpec(BaseModel):
    """Describes one user-facing strategy parameter.

    The presentation layer renders forms generically from this record.
    """

    model_config = ConfigDict(frozen=True)

    type: ParameterType = Field(..., description="Input kind")
    label: str = Field(..., min_length=1, description="Form label")
    description: str = Field(default="", description="Help text")
    default_value: Any = Field(default=None, description="Value used when omitted")
    min: Optional[float] = Field(default=None, description="Minimum numeric value")
    max: Optional[float] = Field(default=None, description="Maximum numeric value")
    step: Optional[float] = Field(default=None, description="Numeric step")
    options: Optional[List[ParameterOption]] = Field(
        default=None, description="Choices for selection parameters"
    )
    required: bool = Field(default=False, description="Whether a value is mandatory")
    validation: Optional[Callable[[Any], Optional[str]]] = Field(
        default=None,
        exclude=True,
        description="Custom check returning an error message or None",
    )

    @property
    def option_values(self) -> List[Any]:
        return [option.value for option in self.options or []]


ParameterSchema = Dict[str, ParameterSpec]


class StrategyDefinition(BaseModel):
    """Static identity and parameter schema of a strategy."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique strategy id")
    name: str = Field(..., min_length=1, description="Display name")
    description: str = Field(default="", description="What the strategy does")
    category: StrategyCategory = Field(..., description="Catalog category")
    priority: PriorityLevel = Field(default="MEDIUM", description="Priority tier")
    difficulty: DifficultyLevel = Field(
        default="INTERMEDIATE", description="Implementation difficulty"
    )
    estimated_timeframe_months: int = Field(
        default=12, ge=0, description="Typical time to implement"
    )
    tags: List[str] = Field(default_factory=list, description="Search tags")
    parameters: ParameterSchema = Field(
        default_factory=dict, description="Parameter name to spec, in display order"
    )


# ---------------------------------------------------------------------------
# Execution context
# ---------------------------------------------------------------------------


class PlanConfig(BaseModel):
    """Simulation settings of the plan a strategy runs against."""

    simulation_start_year: int = Field(..., ge=1900, le=2200, description="First plan year")
    current_age: int = Field(default=30, ge=0, le=120, description="Age today")
    retirement_age: int = Field(default=65, ge=0, le=120, description="Planned retirement age")
    inflation_rate: float = Field(default=0.025, ge=-0.1, le=0.5, description="Annual inflation")
    expected_return: float = Field(
        default=0.07, ge=-0.5, le=0.5, description="Expected annual portfolio return"
    )


class ExecutionContext(BaseModel):
    """Everything a strategy may read. Strategies never modify it."""

    model_config = ConfigDict(frozen=True)

    current_events: List[FinancialEvent] = Field(
        default_factory=list, description="Existing plan events, in plan order"
    )
    user_inputs: Dict[str, Any] = Field(
        default_factory=dict, description="Submitted parameter values"
    )
    current_age: int = Field(..., ge=0, le=120, description="Age today")
    current_year: int = Field(..., description="Calendar year today")
    start_date: date = Field(..., description="Reference date for month offsets")
    config: PlanConfig = Field(..., description="Plan simulation settings")

    @classmethod
    def create(
        cls,
        current_events: Optional[List[Any]] = None,
        config: Optional[PlanConfig] = None,
        user_inputs: Optional[Dict[str, Any]] = None,
        today: Optional[date] = None,
    ) -> "ExecutionContext":
        """Build a context with defaults (age 30, current year) for missing config."""
        today = today or date.today()
        config = config or PlanConfig(simulation_start_year=today.year)
        return cls(
            current_events=list(current_events or []),
            user_inputs=dict(user_inputs or {}),
            current_age=config.current_age,
            current_year=today.year,
            start_date=today,
            config=config,
        )

    def with_inputs(self, user_inputs: Dict[str, Any]) -> "ExecutionContext":
        """Copy of this context with the user inputs replaced."""
        return self.model_copy(update={"user_inputs": dict(user_inputs)})

    @property
    def years_to_retirement(self) -> int:
        return max(0, self.config.retirement_age - self.current_age)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class GeneratedEvent(BaseModel):
    """A new event proposed by a strategy."""

    model_config = ConfigDict(frozen=True)

    event: FinancialEvent = Field(..., description="The proposed event")
    reason: str = Field(..., description="Why the strategy proposes it")
    is_editable: bool = Field(default=True, description="Whether the user may edit it")
    linked_to_strategy: bool = Field(default=True, description="Owned by the strategy")
    importance: ImportanceLevel = Field(default="MEDIUM", description="Importance")


class FieldChange(BaseModel):
    """One changed field of a modified event."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Dotted field path")
    old_value: Any = Field(default=None, description="Value before the change")
    new_value: Any = Field(default=None, description="Value after the change")
    reason: str = Field(default="", description="Why the value changed")


class ModifiedEvent(BaseModel):
    """Replacement for an event a strategy generated on an earlier run."""

    model_config = ConfigDict(frozen=True)

    original_event_id: str = Field(..., description="Id of the event being replaced")
    modified_event: FinancialEvent = Field(..., description="Replacement event")
    changes: List[FieldChange] = Field(default_factory=list, description="Changed fields")


class Recommendation(BaseModel):
    """Advice attached to a strategy result."""

    id: str = Field(default_factory=lambda: new_event_id("rec"))
    title: str = Field(..., description="Short title")
    description: str = Field(..., description="Full advice text")
    type: Literal["ACTION", "CONSIDERATION", "OPTIMIZATION", "WARNING"] = "ACTION"
    priority: PriorityLevel = "MEDIUM"
    estimated_benefit: str = ""
    time_to_implement: str = ""
    difficulty: Literal["EASY", "MODERATE", "DIFFICULT"] = "MODERATE"


class RiskFactor(BaseModel):
    factor: str
    severity: Literal["LOW", "MEDIUM", "HIGH"]
    mitigation: str


class CashFlowImpact(BaseModel):
    monthly_change: float = 0.0
    annual_change: float = 0.0
    first_year_total: float = 0.0


class NetWorthImpact(BaseModel):
    five_year_projection: float = 0.0
    ten_year_projection: float = 0.0
    retirement_impact: float = 0.0


class TaxImpact(BaseModel):
    annual_tax_savings: float = 0.0
    lifetime_tax_savings: float = 0.0


class StrategyImpact(BaseModel):
    """Projected multi-year effect of applying a strategy."""

    cash_flow_impact: CashFlowImpact = Field(default_factory=CashFlowImpact)
    net_worth_impact: NetWorthImpact = Field(default_factory=NetWorthImpact)
    tax_impact: TaxImpact = Field(default_factory=TaxImpact)
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    engine_warnings: List[str] = Field(
        default_factory=list, description="Problems reported by the simulation engine"
    )
    blocked_outputs: List[BlockedOutput] = Field(
        default_factory=list, description="Engine outputs that could not be produced"
    )


class PolicySummary(BaseModel):
    """Compact description of the policy a strategy put in place."""

    summary: str = Field(..., description="One-line policy summary")
    details: List[str] = Field(default_factory=list, description="Detail lines")
    configuration: Dict[str, Any] = Field(
        default_factory=dict, description="Machine-readable policy settings"
    )


class StrategyResult(BaseModel):
    """Outcome of one strategy execution. Failures are results too."""

    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="Whether the strategy ran")
    strategy_id: str = Field(..., description="Strategy that produced the result")
    strategy_name: str = Field(default="", description="Strategy display name")
    new_plan_name: str = Field(default="", description="Suggested plan name")
    generated_events: List[GeneratedEvent] = Field(default_factory=list)
    modified_events: List[ModifiedEvent] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    estimated_impact: StrategyImpact = Field(default_factory=StrategyImpact)
    warnings: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
    policy: Optional[PolicySummary] = Field(default=None)


class ApplicabilityResult(BaseModel):
    """Answer to "can this strategy run here?" with reasons either way."""

    applicable: bool
    reasons: List[str] = Field(default_factory=list)


class InputValidation(BaseModel):
    """Field-level validation outcome for submitted parameters."""

    valid: bool
    errors: Dict[str, str] = Field(default_factory=dict)

    def summary(self) -> List[str]:
        """Errors as ``"<field>: <message>"`` lines."""
        return [f"{field}: {message}" for field, message in self.errors.items()]
