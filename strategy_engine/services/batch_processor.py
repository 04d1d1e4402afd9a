"""
Batch execution of several strategies against one plan.

Strategies run one after another in a fixed priority order. Each
successful result is composed into the working plan before the next
strategy runs, so later strategies see earlier output. Cash flow
over-commitment and strategies targeting the same account are reported as
conflicts; they never stop the batch.
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from ..models.events import FinancialEvent
from ..models.strategy import (
    CashFlowImpact,
    ExecutionContext,
    NetWorthImpact,
    StrategyImpact,
    StrategyResult,
    TaxImpact,
)
from ..strategies.base import estimate_monthly_income, is_number
from .execution_service import StrategyExecutionService
from .plan_composition import ComposedPlan, PlanCompositionService

logger = logging.getLogger(__name__)

# Debt first, then tax-advantaged saving, then general investing and allocation
EXECUTION_PRIORITY = [
    "debt-payoff-strategy",
    "contribution-optimization",
    "investment-optimization",
    "glide-path",
]

# Input carrying each strategy's monthly cash commitment
MONTHLY_COMMITMENT_INPUTS = {
    "investment-optimization": "monthly_investment",
    "debt-payoff-strategy": "extra_payment",
}

MAX_COMMITMENT_SHARE = 0.8

ConflictType = Literal["resource_allocation", "account_type"]
ConflictSeverity = Literal["LOW", "MEDIUM", "HIGH"]


class StrategyConflict(BaseModel):
    """Two or more strategies competing for the same money or account."""

    strategy_ids: List[str] = Field(..., description="Strategies involved")
    type: ConflictType = Field(..., description="Kind of conflict")
    description: str = Field(..., description="Human-readable explanation")
    severity: ConflictSeverity = Field(default="MEDIUM", description="Severity")


class BatchResult(BaseModel):
    """Outcome of running several strategies in sequence."""

    success: bool = Field(..., description="At least one strategy succeeded")
    execution_order: List[str] = Field(default_factory=list, description="Order strategies ran in")
    executed_strategies: List[str] = Field(
        default_factory=list, description="Strategies that succeeded"
    )
    results: List[StrategyResult] = Field(default_factory=list, description="Every result, in order")
    conflicts: List[StrategyConflict] = Field(default_factory=list, description="Detected conflicts")
    combined_impact: StrategyImpact = Field(
        default_factory=StrategyImpact, description="Sum of successful impacts"
    )
    warnings: List[str] = Field(default_factory=list, description="Warnings of every strategy")
    plan: Optional[ComposedPlan] = Field(
        default=None, description="Base plan with every successful result applied"
    )


def execution_order(strategy_ids: List[str]) -> List[str]:
    """Strategies sorted by priority; ids without a priority keep their order at the end."""
    unique = list(dict.fromkeys(strategy_ids))
    ranked = [sid for sid in EXECUTION_PRIORITY if sid in unique]
    return ranked + [sid for sid in unique if sid not in EXECUTION_PRIORITY]


def combine_impacts(impacts: List[StrategyImpact]) -> StrategyImpact:
    """Field-wise sum of impacts; risk factors and engine output are concatenated."""
    return StrategyImpact(
        cash_flow_impact=CashFlowImpact(
            monthly_change=sum(i.cash_flow_impact.monthly_change for i in impacts),
            annual_change=sum(i.cash_flow_impact.annual_change for i in impacts),
            first_year_total=sum(i.cash_flow_impact.first_year_total for i in impacts),
        ),
        net_worth_impact=NetWorthImpact(
            five_year_projection=sum(i.net_worth_impact.five_year_projection for i in impacts),
            ten_year_projection=sum(i.net_worth_impact.ten_year_projection for i in impacts),
            retirement_impact=sum(i.net_worth_impact.retirement_impact for i in impacts),
        ),
        tax_impact=TaxImpact(
            annual_tax_savings=sum(i.tax_impact.annual_tax_savings for i in impacts),
            lifetime_tax_savings=sum(i.tax_impact.lifetime_tax_savings for i in impacts),
        ),
        risk_factors=[risk for i in impacts for risk in i.risk_factors],
        engine_warnings=[warning for i in impacts for warning in i.engine_warnings],
        blocked_outputs=[blocked for i in impacts for blocked in i.blocked_outputs],
    )


class StrategyBatchProcessor:
    """Runs several strategies against one plan and merges their output."""

    def __init__(
        self,
        execution: StrategyExecutionService,
        composition: PlanCompositionService,
    ):
        self.execution = execution
        self.composition = composition

    def resource_conflicts(
        self,
        strategy_ids: List[str],
        context: ExecutionContext,
        inputs_by_id: Dict[str, Dict[str, Any]],
    ) -> List[StrategyConflict]:
        """Report monthly commitments above a share of the plan's income."""
        commitments = {}
        for strategy_id in strategy_ids:
            key = MONTHLY_COMMITMENT_INPUTS.get(strategy_id)
            value = inputs_by_id.get(strategy_id, {}).get(key) if key else None
            if value is None and key:
                strategy = self.execution.registry.get_by_id(strategy_id)
                value = strategy.get_parameters()[key].default_value if strategy else None
            if is_number(value) and value > 0:
                commitments[strategy_id] = value

        income = estimate_monthly_income(context.current_events)
        total = sum(commitments.values())
        if len(commitments) < 2 or income <= 0 or total <= income * MAX_COMMITMENT_SHARE:
            return []

        return [
            StrategyConflict(
                strategy_ids=list(commitments),
                type="resource_allocation",
                description=(
                    f"Total monthly commitments (${total:,.0f}) exceed "
                    f"{MAX_COMMITMENT_SHARE:.0%} of estimated income (${income:,.0f})"
                ),
                severity="HIGH",
            )
        ]

    @staticmethod
    def account_conflicts(results: List[StrategyResult]) -> List[StrategyConflict]:
        """Report event types and target accounts used by more than one strategy."""
        usage: Dict[Tuple[str, str], List[str]] = {}
        for result in results:
            for generated in result.generated_events:
                event = generated.event
                account = getattr(event, "target_account_type", None)
                if account is None:
                    continue
                owners = usage.setdefault((event.strategy_key[0], account), [])
                if result.strategy_id not in owners:
                    owners.append(result.strategy_id)

        return [
            StrategyConflict(
                strategy_ids=owners,
                type="account_type",
                description=f"Multiple strategies add {event_type} events to the {account} account",
            )
            for (event_type, account), owners in usage.items()
            if len(owners) > 1
        ]

    def execute_batch(
        self,
        strategy_ids: List[str],
        context: ExecutionContext,
        inputs_by_id: Optional[Dict[str, Dict[str, Any]]] = None,
        plan_name: Optional[str] = None,
    ) -> BatchResult:
        """
        Run strategies in priority order, composing each result into the plan.

        Args:
            strategy_ids: Strategies to run; unknown ids are skipped with a warning
            context: Plan to start from
            inputs_by_id: Submitted parameters per strategy id
            plan_name: Name of the final plan

        Returns:
            BatchResult with every result, the detected conflicts and the
            composed plan
        """
        inputs_by_id = inputs_by_id or {}
        warnings = []

        known = []
        for strategy_id in strategy_ids:
            if strategy_id in self.execution.registry:
                known.append(strategy_id)
            else:
                logger.warning(f"Skipping unknown strategy {strategy_id} in batch")
                warnings.append(f"Strategy not found: {strategy_id}")

        if not known:
            return BatchResult(success=False, warnings=warnings or ["No strategies requested"])

        order = execution_order(known)
        conflicts = self.resource_conflicts(order, context, inputs_by_id)

        events: List[FinancialEvent] = list(context.current_events)
        results: List[StrategyResult] = []
        applied = 0
        for strategy_id in order:
            step_context = context.model_copy(update={"current_events": list(events)})
            result = self.execution.run(strategy_id, step_context, inputs_by_id.get(strategy_id, {}))
            results.append(result)
            warnings.extend(result.warnings)
            if not result.success:
                logger.info(f"Batch step {strategy_id} did not succeed: {result.warnings}")
                continue

            events = self.composition.compose(events, result).events
            applied += 1

        successful = [result for result in results if result.success]
        conflicts += self.account_conflicts(successful)
        for conflict in conflicts:
            logger.warning(f"Strategy conflict ({conflict.type}): {conflict.description}")

        name = plan_name or f"Comprehensive Strategy Plan - {applied} Strategies"
        logger.info(f"Batch of {len(order)} strategies: {applied} applied, {len(conflicts)} conflicts")
        return BatchResult(
            success=bool(successful),
            execution_order=order,
            executed_strategies=[result.strategy_id for result in successful],
            results=results,
            conflicts=conflicts,
            combined_impact=combine_impacts([result.estimated_impact for result in successful]),
            warnings=warnings,
            plan=ComposedPlan(plan_name=name, events=events),
        )
