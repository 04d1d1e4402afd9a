"""
Tests for the shared strategy helpers.
"""

import pytest

from strategy_engine.models.events import EventType, StrategyMetadata
from strategy_engine.models.strategy import ParameterOption, ParameterSpec
from strategy_engine.strategies.base import (
    build_event,
    estimate_monthly_income,
    find_strategy_event,
    find_strategy_events,
    future_value,
    generate_or_modify,
    has_existing_debt,
    record_changes,
    resolve_inputs,
    validate_parameters,
)

SCHEMA = {
    "amount": ParameterSpec(type="number", label="Amount", min=100, max=1000, required=True),
    "rate": ParameterSpec(type="percentage", label="Rate", min=0, max=1, default_value=0.05),
    "enabled": ParameterSpec(type="boolean", label="Enabled", default_value=True),
    "mode": ParameterSpec(
        type="selection",
        label="Mode",
        default_value="a",
        options=[ParameterOption(value="a", label="A"), ParameterOption(value="b", label="B")],
    ),
    "even": ParameterSpec(
        type="number",
        label="Even",
        max=10,
        validation=lambda value: None if value % 2 == 0 else "Even must be even",
    ),
}


def _contribution(amount, tag="401k", strategy_id="s1"):
    return build_event(
        EventType.SCHEDULED_CONTRIBUTION,
        name="Monthly 401(k)",
        description="Contribution",
        amount=amount,
        target_account_type="tax_deferred",
        metadata=StrategyMetadata(strategy_id=strategy_id, account_preference=tag),
    )


class TestValidateParameters:
    """Test schema-driven input validation."""

    def test_valid_inputs(self):
        """Test that conforming inputs pass."""
        result = validate_parameters(SCHEMA, {"amount": 500, "mode": "b", "even": 4})

        assert result.valid
        assert result.errors == {}

    def test_required_missing(self):
        """Test required-ness."""
        result = validate_parameters(SCHEMA, {})

        assert result.errors == {"amount": "Amount is required"}

    def test_range_errors(self):
        """Test minimum and maximum checks."""
        result = validate_parameters(SCHEMA, {"amount": 50, "rate": 1.5})

        assert result.errors["amount"] == "Amount must be at least 100"
        assert result.errors["rate"] == "Rate must be at most 1"

    def test_type_errors(self):
        """Test numeric, boolean and NaN checks."""
        result = validate_parameters(
            SCHEMA, {"amount": "lots", "enabled": "yes", "rate": float("nan")}
        )

        assert result.errors["amount"] == "Amount must be a valid number"
        assert result.errors["enabled"] == "Enabled must be true or false"
        assert result.errors["rate"] == "Rate must be a valid number"

    def test_infinite_values_rejected(self):
        """Test that infinities are reported as invalid numbers."""
        result = validate_parameters(SCHEMA, {"amount": float("inf"), "even": float("-inf")})

        assert result.errors == {
            "amount": "Amount must be a valid number",
            "even": "Even must be a valid number",
        }

    def test_booleans_are_not_numbers(self):
        """Test that True is not accepted as a number."""
        result = validate_parameters(SCHEMA, {"amount": True})

        assert "amount" in result.errors

    def test_selection_membership(self):
        """Test that selections must be one of the options."""
        result = validate_parameters(SCHEMA, {"amount": 500, "mode": "c"})

        assert result.errors["mode"] == "Mode must be one of: a, b"

    def test_custom_validator_takes_precedence(self):
        """Test that a custom error replaces a range error."""
        result = validate_parameters(SCHEMA, {"amount": 500, "even": 13})

        assert result.errors["even"] == "Even must be even"

    def test_summary_lines(self):
        """Test the field: message summary."""
        result = validate_parameters(SCHEMA, {})

        assert result.summary() == ["amount: Amount is required"]

    def test_resolve_inputs_fills_defaults(self):
        """Test that defaults are filled and None values ignored."""
        resolved = resolve_inputs(SCHEMA, {"amount": 200, "rate": None})

        assert resolved["amount"] == 200
        assert resolved["rate"] == 0.05
        assert resolved["mode"] == "a"


class TestGrowthMath:
    """Test impact math helpers."""

    def test_future_value(self):
        """Test the ordinary annuity formula."""
        assert future_value(1000, 0.0, 5) == 5000
        assert future_value(1000, 0.07, 1) == pytest.approx(1000)
        assert future_value(1000, 0.07, 2) == pytest.approx(2070)


class TestLedgerInspection:
    """Test ledger inspection helpers."""

    def test_monthly_income(self, salary_event):
        """Test that only income events count toward monthly income."""
        rent = build_event(
            EventType.RECURRING_EXPENSE, name="Rent", description="Rent", amount=2000
        )

        assert estimate_monthly_income([salary_event, rent]) == pytest.approx(10000)

    def test_existing_debt(self, debt_events, salary_event):
        """Test liability detection."""
        assert has_existing_debt(debt_events)
        assert not has_existing_debt([salary_event])

    def test_find_strategy_event_by_key(self):
        """Test matching on (type, strategy id, account tag)."""
        events = [_contribution(100, "401k"), _contribution(200, "ira"), _contribution(300, "ira", "s2")]

        found = find_strategy_event(events, EventType.SCHEDULED_CONTRIBUTION, "s1", "ira")

        assert found is events[1]
        assert find_strategy_event(events, EventType.SCHEDULED_CONTRIBUTION, "s1", "hsa") is None
        assert find_strategy_event(events, EventType.ROTH_CONVERSION, "s1", "401k") is None

    def test_find_strategy_events_returns_all(self):
        """Test the plural finder keeps ledger order."""
        events = [_contribution(100, "ira"), _contribution(200, "401k"), _contribution(300, "ira")]

        found = find_strategy_events(events, EventType.SCHEDULED_CONTRIBUTION, "s1", "ira")

        assert [event.amount for event in found] == [100, 300]


class TestChangeTracking:
    """Test record_changes and generate_or_modify."""

    def test_record_changes_lists_changed_fields(self):
        """Test that changed fields are listed with old and new values."""
        existing = _contribution(100)
        replacement = existing.model_copy(update={"amount": 250, "id": "other-id"})

        changes = record_changes(existing, replacement, "raised")

        assert [change.field for change in changes] == ["amount"]
        assert changes[0].old_value == 100
        assert changes[0].new_value == 250
        assert changes[0].reason == "raised"

    def test_record_changes_nested_paths(self):
        """Test dotted paths for metadata changes."""
        existing = _contribution(100)
        metadata = existing.metadata.model_copy(update={"notes": "updated"})
        replacement = existing.model_copy(update={"metadata": metadata})

        changes = record_changes(existing, replacement)

        assert [change.field for change in changes] == ["metadata.notes"]

    def test_generate_when_no_prior_output(self):
        """Test that a new event is generated when nothing matches."""
        generated, modified = generate_or_modify([], _contribution(100), "new", importance="HIGH")

        assert modified is None
        assert generated.reason == "new"
        assert generated.importance == "HIGH"
        assert generated.linked_to_strategy

    def test_modify_when_prior_output_exists(self):
        """Test that prior output is updated in place."""
        existing = _contribution(100)

        generated, modified = generate_or_modify(
            [existing], _contribution(400), "new", change_reason="more savings"
        )

        assert generated is None
        assert modified.original_event_id == existing.id
        assert modified.modified_event.id == existing.id
        assert modified.modified_event.amount == 400
        assert modified.modified_event.metadata.last_updated is not None
        assert [change.field for change in modified.changes] == ["amount"]
        assert modified.changes[0].reason == "more savings"
        assert existing.amount == 100
