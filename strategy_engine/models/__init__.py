"""Data models for strategy execution: events, schedules, allocation and results."""

from .allocation import (
    AllocationPlan,
    GlidePathPoint,
    WaterfallBucket,
    allocate_waterfall,
    build_glide_path,
    interpolate,
)
from .events import (
    AllocationEvent,
    AssetMix,
    CashFlowEvent,
    ContributionEvent,
    EventType,
    FinancialEvent,
    LiabilityEvent,
    LiabilityPaymentEvent,
    MilestoneEvent,
    StrategyMetadata,
    TransferEvent,
    parse_event,
    parse_events,
)
from .schedule import ScheduleConfig, ScheduleExpansion, expand_schedule, month_offset
from .simulation import (
    HttpSimulationEngine,
    SimulationEngine,
    SimulationRequest,
    SimulationResponse,
)
from .strategy import (
    ExecutionContext,
    GeneratedEvent,
    ModifiedEvent,
    PlanConfig,
    StrategyCategory,
    StrategyDefinition,
    StrategyImpact,
    StrategyResult,
)

__all__ = [
    "AllocationPlan",
    "GlidePathPoint",
    "WaterfallBucket",
    "allocate_waterfall",
    "build_glide_path",
    "interpolate",
    "AllocationEvent",
    "AssetMix",
    "CashFlowEvent",
    "ContributionEvent",
    "EventType",
    "FinancialEvent",
    "LiabilityEvent",
    "LiabilityPaymentEvent",
    "MilestoneEvent",
    "StrategyMetadata",
    "TransferEvent",
    "parse_event",
    "parse_events",
    "ScheduleConfig",
    "ScheduleExpansion",
    "expand_schedule",
    "month_offset",
    "HttpSimulationEngine",
    "SimulationEngine",
    "SimulationRequest",
    "SimulationResponse",
    "ExecutionContext",
    "GeneratedEvent",
    "ModifiedEvent",
    "PlanConfig",
    "StrategyCategory",
    "StrategyDefinition",
    "StrategyImpact",
    "StrategyResult",
]
