"""
Tests for the financial event model.
"""

from typing import get_args

import pytest
from pydantic import ValidationError

from strategy_engine.models.events import (
    EVENT_VARIANTS,
    AssetMix,
    CashFlowEvent,
    ContributionEvent,
    EventType,
    LiabilityEvent,
    StrategyMetadata,
    TransferEvent,
    dump_events,
    new_event_id,
    parse_event,
    parse_events,
    variant_for,
)


class TestEventUnion:
    """Test the discriminated event union."""

    def test_every_type_has_exactly_one_variant(self):
        """Test that the union is closed over EventType."""
        for event_type in EventType:
            owners = [
                model for model, literal in EVENT_VARIANTS.items() if event_type in get_args(literal)
            ]
            assert len(owners) == 1, event_type

    def test_parse_event_selects_variant(self):
        """Test that the type tag picks the variant model."""
        event = parse_event({"type": "INCOME", "name": "Salary", "amount": 90000})

        assert isinstance(event, CashFlowEvent)
        assert event.type == EventType.INCOME
        assert event.id.startswith("evt-")

    def test_variant_for(self):
        """Test looking up the variant that owns a type."""
        assert variant_for(EventType.ROTH_CONVERSION) is TransferEvent
        assert variant_for("SCHEDULED_CONTRIBUTION") is ContributionEvent

    def test_contribution_requires_target_account(self):
        """Test that typed variant fields are enforced."""
        with pytest.raises(ValidationError):
            parse_event({"type": "SCHEDULED_CONTRIBUTION", "name": "401k", "amount": 500})

    def test_unknown_type_rejected(self):
        """Test that an unknown type tag is rejected."""
        with pytest.raises(ValidationError):
            parse_event({"type": "LOTTERY_WIN", "amount": 1})

    def test_metadata_extras_survive_serialization(self):
        """Test that strategy-specific metadata keys round trip through JSON."""
        event = ContributionEvent(
            type=EventType.SCHEDULED_CONTRIBUTION,
            name="Roth",
            amount=500,
            target_account_type="roth",
            metadata=StrategyMetadata(strategy_id="s1", glide_path_type="custom"),
        )

        restored = parse_events(dump_events([event]))[0]

        assert restored == event
        assert restored.metadata.model_extra["glide_path_type"] == "custom"


class TestEventIdentity:
    """Test strategy identity helpers on events."""

    def test_account_tag_prefers_metadata(self):
        """Test that account_preference wins over target_account_type."""
        event = ContributionEvent(
            type=EventType.SCHEDULED_CONTRIBUTION,
            target_account_type="tax_deferred",
            metadata=StrategyMetadata(strategy_id="s1", account_preference="401k"),
        )

        assert event.account_tag == "401k"
        assert event.strategy_key == ("SCHEDULED_CONTRIBUTION", "s1", "401k")
        assert event.is_strategy_event

    def test_account_tag_falls_back_to_target_account(self):
        """Test the fallback to target_account_type."""
        event = ContributionEvent(
            type=EventType.SCHEDULED_CONTRIBUTION, target_account_type="roth"
        )

        assert event.account_tag == "roth"
        assert not event.is_strategy_event

    def test_new_event_ids_are_unique(self):
        """Test id generation."""
        ids = {new_event_id() for _ in range(100)}

        assert len(ids) == 100
        assert new_event_id("rec").startswith("rec-")


class TestTypedFields:
    """Test variant-specific validation."""

    def test_outstanding_balance_falls_back_to_principal(self):
        """Test the liability balance fallback."""
        loan = LiabilityEvent(type=EventType.LIABILITY_ADD, principal=5000)

        assert loan.outstanding_balance == 5000
        assert loan.model_copy(update={"balance": 4200}).outstanding_balance == 4200

    def test_interest_rate_is_decimal(self):
        """Test that rates above 100% are rejected."""
        with pytest.raises(ValidationError):
            LiabilityEvent(type=EventType.LIABILITY_ADD, principal=5000, annual_interest_rate=22)

    def test_asset_mix_must_sum_to_one(self):
        """Test allocation weight validation."""
        with pytest.raises(ValidationError):
            AssetMix(weights={"stocks": 0.7, "bonds": 0.2})

        mix = AssetMix(weights={"stocks": 0.7, "bonds": 0.3})
        assert mix.weight("stocks") == 0.7
        assert mix.weight("cash") == 0.0
