"""
Tests for the glide path strategy.
"""

from datetime import date
from unittest.mock import Mock

import pytest

from strategy_engine.models.allocation import GlidePathPoint
from strategy_engine.models.events import EventType
from strategy_engine.models.simulation import BlockedOutput, SimulationResponse
from strategy_engine.services import StrategyExecutionService
from strategy_engine.services.registry import StrategyRegistry
from strategy_engine.strategies import GlidePathStrategy

TODAY = date(2025, 1, 1)


@pytest.fixture
def strategy():
    return GlidePathStrategy()


def _allocations(result):
    return [
        g.event for g in result.generated_events
        if g.event.type == EventType.STRATEGY_ASSET_ALLOCATION_SET
    ]


class TestGlidePath:
    """Test the yearly glide path."""

    def test_path_covers_retirement_and_post_phase(self, strategy, make_context):
        """Test 30 pre- and 15 post-retirement years from age 35."""
        context = make_context()
        inputs = strategy.definition.parameters
        path = strategy.glide_path({k: v.default_value for k, v in inputs.items()}, context)

        assert len(path) == 46
        assert path[0].age == 35
        assert path[0].year == 2025
        assert path[0].primary_weight == pytest.approx(0.90)
        assert path[30].primary_weight == pytest.approx(0.50)
        assert path[-1].primary_weight == pytest.approx(0.40)

    def test_path_is_monotonic(self, strategy, make_context):
        """Test that stock weight never rises along the default path."""
        context = make_context()
        inputs = {k: v.default_value for k, v in strategy.definition.parameters.items()}
        weights = [point.primary_weight for point in strategy.glide_path(inputs, context)]

        assert all(later <= earlier + 1e-9 for earlier, later in zip(weights, weights[1:]))

    def test_expected_return_and_volatility(self):
        """Test averages for an all-stock and an all-bond point."""
        path = [
            GlidePathPoint(age=30, year=2025, primary_weight=1.0, secondary_weight=0.0),
            GlidePathPoint(age=31, year=2026, primary_weight=0.0, secondary_weight=1.0),
        ]

        expected_return, volatility = GlidePathStrategy.expected_return_and_volatility(path)

        assert expected_return == pytest.approx(0.05)
        assert volatility == pytest.approx(0.095)


class TestGlidePathExecution:
    """Test allocation events and milestones."""

    def test_first_allocation_event(self, strategy, make_context):
        """Test the immediate allocation with the international split."""
        result = strategy.execute(make_context())

        first = _allocations(result)[0]
        assert first.month_offset == 0
        assert first.name == "Glide Path Adjustment - Age 35"
        assert first.allocation.weight("domestic_stock") == pytest.approx(0.63)
        assert first.allocation.weight("international_stock") == pytest.approx(0.27)
        assert first.allocation.weight("bonds") == pytest.approx(0.10)
        assert first.metadata.account_preference == "glide-path:35"

    def test_adjustments_respect_minimum_change(self, strategy, make_context):
        """Test that consecutive events differ by at least the threshold."""
        result = strategy.execute(make_context(user_inputs={"minimum_adjustment": 0.05}))

        stocks = [1 - event.allocation.weight("bonds") for event in _allocations(result)]
        assert len(stocks) > 1
        assert all(abs(a - b) >= 0.05 - 1e-9 for a, b in zip(stocks, stocks[1:]))

    def test_life_event_milestones(self, strategy, make_context):
        """Test milestones strictly between current and retirement age."""
        result = strategy.execute(make_context())

        milestones = [
            g.event for g in result.generated_events if g.event.type == EventType.FINANCIAL_MILESTONE
        ]
        assert [m.metadata.account_preference for m in milestones] == [
            "life-event:40",
            "life-event:50",
            "life-event:55",
        ]
        assert milestones[0].month_offset == 60

    def test_life_events_can_be_disabled(self, strategy, make_context):
        """Test the include_life_event_adjustments flag."""
        result = strategy.execute(make_context(user_inputs={"include_life_event_adjustments": False}))

        assert all(
            g.event.type == EventType.STRATEGY_ASSET_ALLOCATION_SET for g in result.generated_events
        )

    def test_rerun_updates_existing_events(self, strategy, make_context):
        """Test that a second run modifies instead of duplicating."""
        first = strategy.execute(make_context())
        existing = [g.event for g in first.generated_events]

        second = strategy.execute(make_context(existing))

        assert second.generated_events == []
        assert len(second.modified_events) == len(existing)
        assert {m.original_event_id for m in second.modified_events} == {e.id for e in existing}

    def test_plan_name_and_policy(self, strategy, make_context):
        """Test the plan name and policy summary."""
        result = strategy.execute(make_context())

        assert result.new_plan_name == "Target Date Glide Path Plan"
        assert result.policy.summary == "90% → 50% at 65 → 40% stocks"


class TestGlidePathChecks:
    """Test warnings, applicability and validation."""

    def test_default_path_has_no_warnings(self, strategy, make_context):
        """Test the default glide path."""
        assert strategy.execute(make_context()).warnings == []

    def test_steep_path_warning(self, strategy, make_context, plan_config):
        """Test the large annual change warning."""
        config = plan_config.model_copy(update={"current_age": 55, "retirement_age": 60})
        result = strategy.execute(make_context(config=config, user_inputs={"target_retirement_age": 60}))

        assert "Glide path may be too aggressive - large annual allocation changes" in result.warnings

    def test_flat_path_warning(self, strategy, make_context):
        """Test the minimal change warning."""
        result = strategy.execute(
            make_context(
                user_inputs={"starting_stock_percentage": 0.65, "retirement_stock_percentage": 0.6}
            )
        )

        assert any("too conservative - minimal allocation changes" in w for w in result.warnings)

    def test_not_applicable_near_retirement(self, strategy, make_context, plan_config):
        """Test that a 62 year old is turned away."""
        config = plan_config.model_copy(update={"current_age": 62})

        applicability = strategy.can_apply(make_context(config=config))

        assert not applicability.applicable
        assert "age under 60" in applicability.reasons[0]

    def test_applicable_reason(self, strategy, make_context):
        """Test the years-to-retirement reason."""
        applicability = strategy.can_apply(make_context())

        assert applicability.applicable
        assert applicability.reasons == ["30 years to retirement allow a gradual glide path"]

    def test_retirement_allocation_above_start(self, strategy):
        """Test the ordering check between start and retirement mixes."""
        validation = strategy.validate_inputs(
            {"starting_stock_percentage": 0.6, "retirement_stock_percentage": 0.7}
        )

        assert not validation.valid
        assert validation.errors["retirement_stock_percentage"] == (
            "Retirement stock allocation cannot exceed the starting allocation"
        )

    def test_fractional_retirement_age(self, strategy):
        """Test the whole-years check."""
        validation = strategy.validate_inputs({"target_retirement_age": 65.5})

        assert validation.errors["target_retirement_age"] == (
            "Target Retirement Age must be a whole number of years"
        )

    def test_infinite_retirement_age(self, strategy):
        """Test that an infinite age is a field error, not an exception."""
        validation = strategy.validate_inputs({"target_retirement_age": float("inf")})

        assert not validation.valid
        assert validation.errors["target_retirement_age"] == (
            "Target Retirement Age must be a valid number"
        )


class TestGlidePathEngine:
    """Test impact estimation through a simulation engine."""

    def test_without_engine(self, strategy, make_context):
        """Test that the impact carries no engine output."""
        impact = strategy.estimate_impact(make_context())

        assert impact.engine_warnings == []
        assert len(impact.risk_factors) == 2

    def test_engine_problems_surface_in_impact(self, make_context):
        """Test that engine failures and blocked outputs become warnings."""
        engine = Mock()
        engine.run_deterministic.return_value = SimulationResponse(
            success=False,
            error="engine offline",
            blocked_outputs=[BlockedOutput(output_name="mc_percentiles", reason="no paths")],
        )
        strategy = GlidePathStrategy(engine=engine, seed=7)

        impact = strategy.estimate_impact(make_context())

        request = engine.run_deterministic.call_args[0][0]
        assert request.seed == 7
        assert request.months_to_run == 552
        assert all(e.type == EventType.STRATEGY_ASSET_ALLOCATION_SET for e in request.events)
        assert impact.engine_warnings == [
            "Simulation engine failed: engine offline",
            "mc_percentiles unavailable: no paths",
        ]
        assert impact.blocked_outputs[0].output_name == "mc_percentiles"

    def test_engine_problems_surface_in_result_warnings(self, make_context):
        """Test that engine failures reach the executed result's warnings."""
        engine = Mock()
        engine.run_deterministic.return_value = SimulationResponse(
            success=False,
            error="engine down",
            blocked_outputs=[BlockedOutput(output_name="mc_percentiles", reason="no paths")],
        )
        registry = StrategyRegistry()
        registry.register(GlidePathStrategy(engine=engine))
        service = StrategyExecutionService(registry, clock=lambda: TODAY, horizon_years=30)

        result = service.run("glide-path", make_context())

        assert result.success
        assert "Simulation engine failed: engine down" in result.warnings
        assert "mc_percentiles unavailable: no paths" in result.warnings
        assert result.estimated_impact.engine_warnings == [
            "Simulation engine failed: engine down",
            "mc_percentiles unavailable: no paths",
        ]
