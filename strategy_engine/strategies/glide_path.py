"""
Glide path strategy.

Moves the portfolio from a growth-heavy mix toward a defensive one as
retirement approaches, and keeps de-risking for a further fifteen years
after it. Each yearly point of the path that differs enough from the last
emitted mix becomes an asset allocation event.
"""

import logging
import math
from typing import Any, Dict, List, Optional

import numpy as np

from ..models.allocation import GlidePathPoint, build_glide_path, distribute
from ..models.events import AssetMix, EventType, StrategyMetadata
from ..models.simulation import SimulationEngine, SimulationRequest
from ..models.strategy import (
    ApplicabilityResult,
    ExecutionContext,
    GeneratedEvent,
    InputValidation,
    ModifiedEvent,
    ParameterOption,
    ParameterSchema,
    ParameterSpec,
    PolicySummary,
    RiskFactor,
    StrategyCategory,
    StrategyDefinition,
    StrategyImpact,
    StrategyResult,
)
from .base import (
    build_event,
    generate_or_modify,
    is_number,
    recommendation,
    resolve_inputs,
    success_result,
    validate_parameters,
)

logger = logging.getLogger(__name__)

GLIDE_PATH_SHAPES = {
    "conservative": "ease_out",
    "moderate": "linear",
    "aggressive": "ease_in",
    "target_date": "s_curve",
    "custom": "linear",
}

SMOOTHING_EXPONENTS = {"aggressive": 1.5, "moderate": 1.0, "conservative": 0.7}

# Years between reviews, rounded up to whole glide path points
ADJUSTMENT_INTERVALS = {"quarterly": 0.25, "semi_annually": 0.5, "annually": 1, "every_2_years": 2}

LIFE_EVENTS = [
    (30, "Marriage/Partnership"),
    (32, "First Child"),
    (35, "Home Purchase"),
    (40, "Career Peak"),
    (50, "Pre-Retirement Planning"),
    (55, "College Planning Peak"),
]

STOCK_RETURN = 0.07
BOND_RETURN = 0.03
STOCK_VOLATILITY = 0.15
BOND_VOLATILITY = 0.04

POST_RETIREMENT_YEARS = 15


def _check_retirement_age(value: Any) -> Optional[str]:
    if is_number(value) and not float(value).is_integer():
        return "Target Retirement Age must be a whole number of years"
    return None


class GlidePathStrategy:
    """Age-based asset allocation that de-risks over time."""

    id = "glide-path"
    name = "Glide Path Optimizer"
    category = StrategyCategory.INVESTMENT_STRATEGY

    def __init__(self, engine: Optional[SimulationEngine] = None, seed: int = 42):
        self.engine = engine
        self.seed = seed
        self.definition = StrategyDefinition(
            id=self.id,
            name=self.name,
            description=(
                "Automatically adjust asset allocation over time based on age "
                "and retirement timeline"
            ),
            category=self.category,
            priority="MEDIUM",
            difficulty="INTERMEDIATE",
            estimated_timeframe_months=240,
            tags=["glide-path", "target-date", "automatic-rebalancing", "age-based", "retirement-planning"],
            parameters=self.get_parameters(),
        )

    def get_parameters(self) -> ParameterSchema:
        return {
            "glide_path_type": ParameterSpec(
                type="selection",
                label="Glide Path Type",
                description="Type of glide path methodology to implement",
                default_value="target_date",
                options=[
                    ParameterOption(value="conservative", label="Conservative (Gradual decrease in stocks)"),
                    ParameterOption(value="moderate", label="Moderate (Standard target date approach)"),
                    ParameterOption(value="aggressive", label="Aggressive (Higher stocks longer)"),
                    ParameterOption(value="target_date", label="Target Date Fund Style"),
                    ParameterOption(value="custom", label="Custom Glide Path"),
                ],
                required=True,
            ),
            "target_retirement_age": ParameterSpec(
                type="number",
                label="Target Retirement Age",
                description="Age when you plan to retire",
                default_value=65,
                min=50,
                max=75,
                step=1,
                required=True,
                validation=_check_retirement_age,
            ),
            "starting_stock_percentage": ParameterSpec(
                type="percentage",
                label="Starting Stock Allocation",
                description="Initial stock allocation percentage",
                default_value=0.90,
                min=0.60,
                max=1.00,
                step=0.05,
                required=True,
            ),
            "retirement_stock_percentage": ParameterSpec(
                type="percentage",
                label="Retirement Stock Allocation",
                description="Target stock allocation at retirement",
                default_value=0.50,
                min=0.20,
                max=0.70,
                step=0.05,
                required=True,
            ),
            "post_retirement_stock_percentage": ParameterSpec(
                type="percentage",
                label="Post-Retirement Stock Allocation",
                description="Final stock allocation after the post-retirement phase",
                default_value=0.40,
                min=0.15,
                max=0.60,
                step=0.05,
                required=True,
            ),
            "adjustment_frequency": ParameterSpec(
                type="selection",
                label="Adjustment Frequency",
                description="How often to review and adjust allocation",
                default_value="annually",
                options=[
                    ParameterOption(value="quarterly", label="Quarterly"),
                    ParameterOption(value="semi_annually", label="Semi-Annually"),
                    ParameterOption(value="annually", label="Annually"),
                    ParameterOption(value="every_2_years", label="Every 2 Years"),
                ],
                required=True,
            ),
            "minimum_adjustment": ParameterSpec(
                type="percentage",
                label="Minimum Adjustment Threshold",
                description="Only adjust if allocation change is at least this amount",
                default_value=0.05,
                min=0.01,
                max=0.10,
                step=0.01,
                required=True,
            ),
            "include_life_event_adjustments": ParameterSpec(
                type="boolean",
                label="Include Life Event Adjustments",
                description="Add allocation reviews at major life events",
                default_value=True,
            ),
            "smoothing_factor": ParameterSpec(
                type="selection",
                label="Glide Path Smoothing",
                description="How gradual the allocation changes should be",
                default_value="moderate",
                options=[
                    ParameterOption(value="aggressive", label="Aggressive (Sharp changes)"),
                    ParameterOption(value="moderate", label="Moderate (Balanced changes)"),
                    ParameterOption(value="conservative", label="Conservative (Gradual changes)"),
                ],
                required=True,
            ),
            "international_allocation": ParameterSpec(
                type="percentage",
                label="International Stock Allocation",
                description="Percentage of stocks allocated to international markets",
                default_value=0.30,
                min=0,
                max=0.50,
                step=0.05,
            ),
        }

    def can_apply(self, context: ExecutionContext) -> ApplicabilityResult:
        if context.current_age >= 60:
            return ApplicabilityResult(
                applicable=False,
                reasons=["Glide paths are most useful with a long investment horizon (age under 60)"],
            )
        return ApplicabilityResult(
            applicable=True,
            reasons=[f"{context.years_to_retirement} years to retirement allow a gradual glide path"],
        )

    def validate_inputs(self, inputs: Dict[str, Any]) -> InputValidation:
        validation = validate_parameters(self.definition.parameters, inputs)
        start = inputs.get("starting_stock_percentage")
        at_retirement = inputs.get("retirement_stock_percentage")
        if (
            isinstance(start, (int, float))
            and isinstance(at_retirement, (int, float))
            and at_retirement > start
        ):
            errors = dict(validation.errors)
            errors.setdefault(
                "retirement_stock_percentage",
                "Retirement stock allocation cannot exceed the starting allocation",
            )
            return InputValidation(valid=False, errors=errors)
        return validation

    def glide_path(self, inputs: Dict[str, Any], context: ExecutionContext) -> List[GlidePathPoint]:
        """Yearly glide path for the resolved inputs, starting today."""
        return build_glide_path(
            current_age=context.current_age,
            retirement_age=int(inputs["target_retirement_age"]),
            start_weight=inputs["starting_stock_percentage"],
            retirement_weight=inputs["retirement_stock_percentage"],
            post_retirement_weight=inputs["post_retirement_stock_percentage"],
            shape=GLIDE_PATH_SHAPES.get(inputs["glide_path_type"], "linear"),
            current_year=context.current_year,
            smoothing=SMOOTHING_EXPONENTS.get(inputs["smoothing_factor"], 1.0),
            post_retirement_years=POST_RETIREMENT_YEARS,
        )

    def execute(self, context: ExecutionContext) -> StrategyResult:
        inputs = resolve_inputs(self.definition.parameters, context.user_inputs)
        path = self.glide_path(inputs, context)
        retirement_age = int(inputs["target_retirement_age"])

        generated_events: List[GeneratedEvent] = []
        modified_events: List[ModifiedEvent] = []

        candidates = self._allocation_events(context, path, inputs)
        if inputs["include_life_event_adjustments"]:
            candidates += self._life_event_milestones(context, retirement_age)

        for event, reason, importance in candidates:
            generated, modified = generate_or_modify(
                context.current_events,
                event,
                reason,
                importance=importance,
                change_reason="Glide path recalculated",
                update_fields=self._update_fields(event),
            )
            if generated is not None:
                generated_events.append(generated)
            if modified is not None:
                modified_events.append(modified)

        logger.info(
            f"Glide path from age {context.current_age}: {len(path)} points, "
            f"{len(generated_events)} new and {len(modified_events)} updated events"
        )

        glide_type = inputs["glide_path_type"]
        impact = self.estimate_impact(context)
        return success_result(
            self,
            new_plan_name=f"{glide_type.replace('_', ' ').title()} Glide Path Plan",
            generated_events=generated_events,
            recommendations=self._recommendations(context, path, retirement_age),
            impact=impact,
            warnings=(
                self.path_warnings(path, context.current_age, retirement_age)
                + impact.engine_warnings
            ),
            next_steps=self._next_steps(glide_type),
            modified_events=modified_events,
            policy=self._policy(path, inputs),
        )

    @staticmethod
    def _update_fields(event: Any):
        if event.type == EventType.STRATEGY_ASSET_ALLOCATION_SET:
            return ("allocation", "description", "month_offset")
        return ("description", "month_offset")

    def _asset_mix(self, point: GlidePathPoint, international: float) -> AssetMix:
        stocks = distribute(
            point.primary_weight,
            {"domestic_stock": 1 - international, "international_stock": international},
        )
        return AssetMix(weights={**stocks, "bonds": point.secondary_weight})

    def _allocation_events(self, context: ExecutionContext, path: List[GlidePathPoint], inputs):
        step = max(1, math.ceil(ADJUSTMENT_INTERVALS.get(inputs["adjustment_frequency"], 1)))
        minimum = inputs["minimum_adjustment"]
        start_year = context.config.simulation_start_year

        events = []
        last_weight = path[0].primary_weight
        for index in range(0, len(path), step):
            point = path[index]
            change = abs(point.primary_weight - last_weight)
            if index > 0 and change < minimum:
                continue

            event = build_event(
                EventType.STRATEGY_ASSET_ALLOCATION_SET,
                name=f"Glide Path Adjustment - Age {point.age}",
                description=(
                    f"Adjust allocation to {round(point.primary_weight * 100)}% stocks, "
                    f"{round(point.secondary_weight * 100)}% bonds"
                ),
                month_offset=(point.year - start_year) * 12,
                allocation=self._asset_mix(point, inputs["international_allocation"]),
                priority=2,
                metadata=StrategyMetadata(
                    strategy_id=self.id,
                    account_preference=f"glide-path:{point.age}",
                    is_auto_generated=True,
                    automation_type="glide_path",
                    glide_path_type=inputs["glide_path_type"],
                ),
            )
            events.append(
                (
                    event,
                    f"Automatic glide path adjustment for age {point.age}",
                    "HIGH" if change >= 0.1 else "MEDIUM",
                )
            )
            last_weight = point.primary_weight
        return events

    def _life_event_milestones(self, context: ExecutionContext, retirement_age: int):
        events = []
        for age, label in LIFE_EVENTS:
            if not context.current_age < age < retirement_age:
                continue
            event = build_event(
                EventType.FINANCIAL_MILESTONE,
                name=f"Life Event Check: {label}",
                description=f"Review and potentially adjust allocation for {label.lower()}",
                month_offset=(age - context.current_age) * 12,
                priority=3,
                metadata=StrategyMetadata(
                    strategy_id=self.id,
                    account_preference=f"life-event:{age}",
                    is_auto_generated=True,
                    automation_type="glide_path",
                ),
            )
            events.append((event, "Life event milestone that may warrant allocation review", "LOW"))
        return events

    def path_warnings(
        self, path: List[GlidePathPoint], current_age: int, retirement_age: int
    ) -> List[str]:
        """Sanity checks on the starting mix, the slope and the final mix."""
        warnings = []
        starting = path[0].primary_weight

        if starting > 0.95:
            warnings.append(
                "Starting stock allocation is very high - consider some bond allocation for stability"
            )
        if starting < 0.6 and current_age < 40:
            warnings.append("Starting stock allocation may be too conservative for your age")

        retirement_index = next(
            (index for index, point in enumerate(path) if point.age >= retirement_age), -1
        )
        if retirement_index > 0:
            annual_reduction = (starting - path[retirement_index].primary_weight) / (
                retirement_age - current_age
            )
            if annual_reduction > 0.03:
                warnings.append("Glide path may be too aggressive - large annual allocation changes")
            if annual_reduction < 0.005:
                warnings.append(
                    "Glide path may be too conservative - minimal allocation changes over time"
                )

        final = path[-1].primary_weight
        if final < 0.2:
            warnings.append("Final stock allocation may be too conservative for longevity risk")
        if final > 0.6:
            warnings.append("Final stock allocation may be too aggressive for retirement")

        return warnings

    def _recommendations(self, context: ExecutionContext, path: List[GlidePathPoint], retirement_age: int):
        current = path[0]
        horizon = retirement_age - context.current_age
        recommendations = [
            recommendation(
                "Implement Initial Glide Path Allocation",
                f"Start with {round(current.primary_weight * 100)}% stocks and "
                f"{round(current.secondary_weight * 100)}% bonds based on your age and "
                "retirement timeline.",
                priority="HIGH",
                estimated_benefit="Age-appropriate risk/return profile",
                time_to_implement="Immediate",
            ),
            recommendation(
                "Automate Glide Path Adjustments",
                "Set up automatic allocation adjustments to reduce the need for manual intervention.",
                type="OPTIMIZATION",
                estimated_benefit="Consistent allocation management",
                time_to_implement="1-2 months",
            ),
        ]
        if context.current_age < 45 and horizon > 15:
            recommendations.append(
                recommendation(
                    "Consider Higher Initial Stock Allocation",
                    "With a long time horizon, you may benefit from a higher initial stock "
                    "allocation for growth.",
                    type="CONSIDERATION",
                    estimated_benefit="Higher long-term returns",
                    time_to_implement="Next rebalancing",
                )
            )
        if horizon <= 10:
            recommendations.append(
                recommendation(
                    "Plan for Sequence of Returns Risk",
                    "Consider strategies to protect against poor market returns in early retirement.",
                    type="WARNING",
                    priority="HIGH",
                    estimated_benefit="Retirement security",
                    time_to_implement="6-12 months",
                )
            )
        return recommendations

    def _next_steps(self, glide_type: str) -> List[str]:
        specific = {
            "target_date": [
                "Consider target date funds as simplified implementation",
                "Compare target date fund glide paths with custom approach",
            ],
            "custom": [
                "Document custom glide path rationale",
                "Set specific milestone dates for major adjustments",
                "Plan for life event allocation reviews",
            ],
            "aggressive": [
                "Monitor sequence of returns risk as retirement approaches",
                "Consider backup plans if markets underperform",
            ],
        }
        return specific.get(glide_type, []) + [
            "Review proposed glide path allocation curve",
            "Set up initial target allocation",
            "Establish automatic rebalancing schedule",
            "Create calendar reminders for allocation reviews",
            "Monitor allocation drift between adjustments",
        ]

    @staticmethod
    def expected_return_and_volatility(path: List[GlidePathPoint]):
        """Equal-weighted average expected return and volatility along the path."""
        stocks = np.array([point.primary_weight for point in path])
        bonds = np.array([point.secondary_weight for point in path])
        expected_return = float(np.mean(stocks * STOCK_RETURN + bonds * BOND_RETURN))
        volatility = float(np.mean(stocks * STOCK_VOLATILITY + bonds * BOND_VOLATILITY))
        return expected_return, volatility

    def _policy(self, path: List[GlidePathPoint], inputs: Dict[str, Any]) -> PolicySummary:
        expected_return, volatility = self.expected_return_and_volatility(path)
        return PolicySummary(
            summary=(
                f"{round(path[0].primary_weight * 100)}% → "
                f"{round(inputs['retirement_stock_percentage'] * 100)}% at "
                f"{int(inputs['target_retirement_age'])} → "
                f"{round(path[-1].primary_weight * 100)}% stocks"
            ),
            details=[
                f"Average expected return: {expected_return * 100:.1f}%",
                f"Average volatility: {volatility * 100:.1f}%",
            ],
            configuration={
                "glide_path_type": inputs["glide_path_type"],
                "points": [point.model_dump() for point in path],
            },
        )

    def estimate_impact(self, context: ExecutionContext) -> StrategyImpact:
        inputs = resolve_inputs(self.definition.parameters, context.user_inputs)
        path = self.glide_path(inputs, context)
        expected_return, volatility = self.expected_return_and_volatility(path)

        impact = StrategyImpact(
            risk_factors=[
                RiskFactor(
                    factor=f"Portfolio volatility (average {volatility * 100:.1f}%)",
                    severity="MEDIUM" if volatility > 0.08 else "LOW",
                    mitigation="Allocation de-risks automatically as retirement approaches",
                ),
                RiskFactor(
                    factor="Sequence of returns risk",
                    severity="HIGH" if context.years_to_retirement <= 10 else "MEDIUM",
                    mitigation="Bond allocation grows through the retirement transition",
                ),
            ]
        )

        if self.engine is None:
            return impact

        events = [event for event, _, _ in self._allocation_events(context, path, inputs)]
        request = SimulationRequest(
            seed=self.seed,
            months_to_run=len(path) * 12,
            events=events,
            stochastic_config={"expected_return": expected_return, "volatility": volatility},
        )
        response = self.engine.run_deterministic(request)
        if not response.success or response.blocked_outputs:
            logger.warning(f"Simulation engine reported problems for {self.id}: {response.warnings()}")
        return impact.model_copy(
            update={
                "engine_warnings": response.warnings(),
                "blocked_outputs": list(response.blocked_outputs),
            }
        )
