"""
Strategy execution service.

Runs a strategy against a plan: applicability check, input validation,
execution and expansion of scheduled events into dated occurrences. Every
failure along the way, including unexpected exceptions raised by strategy
code, comes back as an unsuccessful StrategyResult.
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import get_global_settings
from ..models.events import EventType, new_event_id
from ..models.schedule import CustomSchedule, ScheduleExpansion, ScheduleFrequency, month_offset
from ..models.strategy import (
    ExecutionContext,
    GeneratedEvent,
    PlanConfig,
    StrategyImpact,
    StrategyResult,
)
from ..strategies.base import Strategy, empty_impact, failure_result, resolve_inputs
from .registry import StrategyRegistry

logger = logging.getLogger(__name__)


class StrategyComparison(BaseModel):
    """Side-by-side entry produced by ``compare_strategies``."""

    strategy_id: str = Field(..., description="Strategy id")
    strategy_name: str = Field(default="", description="Strategy display name")
    applicable: bool = Field(..., description="Whether the strategy fits the plan")
    reasons: List[str] = Field(default_factory=list, description="Applicability reasons")
    impact: StrategyImpact = Field(default_factory=StrategyImpact, description="Estimated impact")


class EventTemplate(BaseModel):
    """Loosely validated event template submitted for scheduling."""

    name: str = Field(default="Unnamed", description="Template name")
    event_type: Optional[EventType] = Field(default=None, description="Event type to create")
    start_date: Optional[date] = Field(default=None, description="First occurrence")
    frequency: ScheduleFrequency = Field(default="one_time", description="Recurrence")
    custom_schedule: Optional[CustomSchedule] = Field(
        default=None, description="Dates or recurrence for custom frequency"
    )


class StrategyExecutionService:
    """Executes strategies from a registry against execution contexts."""

    def __init__(
        self,
        registry: StrategyRegistry,
        clock: Optional[Callable[[], date]] = None,
        horizon_years: Optional[int] = None,
    ):
        self.registry = registry
        self.clock = clock or date.today
        self.horizon_years = horizon_years or get_global_settings().schedule_horizon_years

    def build_context(
        self,
        current_events: Optional[List[Any]] = None,
        config: Optional[PlanConfig] = None,
        user_inputs: Optional[Dict[str, Any]] = None,
    ) -> ExecutionContext:
        """Execution context dated by the service clock."""
        return ExecutionContext.create(
            current_events=current_events,
            config=config,
            user_inputs=user_inputs,
            today=self.clock(),
        )

    def execute_strategy(
        self,
        strategy: Strategy,
        context: ExecutionContext,
        user_inputs: Optional[Dict[str, Any]] = None,
    ) -> StrategyResult:
        """
        Run one strategy.

        Args:
            strategy: Strategy to run
            context: Plan to run it against
            user_inputs: Submitted parameters; the context's own inputs when None

        Returns:
            The strategy result with scheduled events expanded, or an
            unsuccessful result describing why the strategy did not run
        """
        try:
            if user_inputs is not None:
                context = context.with_inputs(user_inputs)

            applicability = strategy.can_apply(context)
            if not applicability.applicable:
                logger.info(f"Strategy {strategy.id} not applicable: {applicability.reasons}")
                return failure_result(strategy.id, strategy.name, applicability.reasons)

            inputs = resolve_inputs(strategy.get_parameters(), context.user_inputs)
            validation = strategy.validate_inputs(inputs)
            if not validation.valid:
                logger.info(f"Strategy {strategy.id} rejected inputs: {validation.errors}")
                return failure_result(strategy.id, strategy.name, validation.summary())

            result = strategy.execute(context)
            return self._expand_scheduled_events(result, context)

        except Exception as e:
            logger.exception(f"Strategy {strategy.id} failed during execution")
            return failure_result(strategy.id, strategy.name, [f"Strategy execution failed: {e}"])

    def run(
        self,
        strategy_id: str,
        context: ExecutionContext,
        user_inputs: Optional[Dict[str, Any]] = None,
    ) -> StrategyResult:
        """Look a strategy up by id and execute it. Never raises."""
        strategy = self.registry.get_by_id(strategy_id)
        if strategy is None:
            logger.warning(f"Requested unknown strategy {strategy_id}")
            return failure_result(strategy_id, "", [f"Strategy not found: {strategy_id}"])
        return self.execute_strategy(strategy, context, user_inputs)

    def _expand_scheduled_events(
        self, result: StrategyResult, context: ExecutionContext
    ) -> StrategyResult:
        if not any(generated.event.schedule for generated in result.generated_events):
            return result

        expanded: List[GeneratedEvent] = []
        for generated in result.generated_events:
            schedule = generated.event.schedule
            if schedule is None:
                expanded.append(generated)
                continue

            occurrences = 0
            for scheduled_date in ScheduleExpansion(schedule, self.horizon_years):
                event = generated.event.model_copy(
                    deep=True,
                    update={
                        "id": new_event_id(),
                        "start_date": scheduled_date,
                        "month_offset": month_offset(context.start_date, scheduled_date),
                        "schedule": None,
                    },
                )
                expanded.append(
                    generated.model_copy(
                        update={
                            "event": event,
                            "reason": f"{generated.reason} (scheduled for {scheduled_date.isoformat()})",
                        }
                    )
                )
                occurrences += 1
            logger.debug(f"Expanded {generated.event.name} into {occurrences} occurrences")

        return result.model_copy(update={"generated_events": expanded})

    def estimate_impact(self, strategy_id: str, context: ExecutionContext) -> StrategyImpact:
        """
        Impact estimate for one strategy.

        Raises:
            StrategyNotFoundError: If the id is not registered
        """
        strategy = self.registry.require(strategy_id)
        return strategy.estimate_impact(context)

    def compare_strategies(
        self, strategy_ids: List[str], context: ExecutionContext
    ) -> List[StrategyComparison]:
        """
        Applicability and impact of several strategies for the same plan.

        Unknown ids are skipped. A strategy whose checks raise is reported
        as not applicable with an empty impact.
        """
        comparisons = []
        for strategy_id in strategy_ids:
            strategy = self.registry.get_by_id(strategy_id)
            if strategy is None:
                logger.warning(f"Skipping unknown strategy {strategy_id} in comparison")
                continue

            try:
                applicability = strategy.can_apply(context)
                applicable, reasons = applicability.applicable, applicability.reasons
            except Exception as e:
                logger.exception(f"Applicability check failed for strategy {strategy_id}")
                applicable, reasons = False, [f"Applicability check failed: {e}"]

            try:
                impact = strategy.estimate_impact(context)
            except Exception:
                logger.exception(f"Impact estimate failed for strategy {strategy_id}")
                impact = empty_impact()

            comparisons.append(
                StrategyComparison(
                    strategy_id=strategy.id,
                    strategy_name=strategy.name,
                    applicable=applicable,
                    reasons=reasons,
                    impact=impact,
                )
            )
        return comparisons

    @staticmethod
    def validate_event_templates(templates: List[EventTemplate]) -> List[str]:
        """Problems with a set of event templates; empty when all are usable."""
        errors = []
        for template in templates:
            if template.start_date is None:
                errors.append(f"Template {template.name}: start_date is required")
            if template.frequency == "custom" and template.custom_schedule is None:
                errors.append(f"Template {template.name}: custom_schedule required for custom frequency")
            if template.event_type is None:
                errors.append(f"Template {template.name}: event type is required")
        return errors
