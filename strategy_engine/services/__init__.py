"""Services that register, execute and compose strategies."""

from .batch_processor import BatchResult, StrategyBatchProcessor, StrategyConflict
from .execution_service import EventTemplate, StrategyComparison, StrategyExecutionService
from .plan_composition import ComposedPlan, PlanCompositionService
from .registry import (
    StrategyNotFoundError,
    StrategyRegistry,
    create_default_registry,
)

__all__ = [
    "BatchResult",
    "StrategyBatchProcessor",
    "StrategyConflict",
    "EventTemplate",
    "StrategyComparison",
    "StrategyExecutionService",
    "ComposedPlan",
    "PlanCompositionService",
    "StrategyNotFoundError",
    "StrategyRegistry",
    "create_default_registry",
]
