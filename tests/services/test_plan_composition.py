"""
Tests for plan composition.
"""

import pytest

from strategy_engine.models.events import EventType, StrategyMetadata
from strategy_engine.models.strategy import GeneratedEvent, ModifiedEvent, StrategyResult
from strategy_engine.services import PlanCompositionService
from strategy_engine.strategies.base import build_event


def _contribution(amount, tag="401k", name="Monthly 401(k) Contribution"):
    return build_event(
        EventType.SCHEDULED_CONTRIBUTION,
        name=name,
        description="Automated contribution",
        amount=amount,
        target_account_type="tax_deferred",
        metadata=StrategyMetadata(strategy_id="investment-optimization", account_preference=tag),
    )


def _rent(amount=2000):
    return build_event(EventType.RECURRING_EXPENSE, name="Rent", description="Apartment", amount=amount)


def _result(generated=(), modified=(), success=True):
    return StrategyResult(
        success=success,
        strategy_id="investment-optimization",
        new_plan_name="Investment Contributions - $3,000/mo",
        generated_events=[GeneratedEvent(event=event, reason="test") for event in generated],
        modified_events=list(modified),
    )


@pytest.fixture
def composer():
    return PlanCompositionService()


class TestCompose:
    """Test appending and identity handling."""

    def test_generated_events_appended_with_fresh_ids(self, composer, salary_event):
        """Test base events first, then generated events, all with new ids."""
        new_event = _contribution(1833)

        plan = composer.compose([salary_event], _result([new_event]))

        assert [e.name for e in plan.events] == ["Salary", "Monthly 401(k) Contribution"]
        assert plan.events[0].id != salary_event.id
        assert plan.events[1].id != new_event.id
        assert plan.events[1].amount == 1833
        assert plan.plan_name == "Investment Contributions - $3,000/mo"

    def test_base_plan_not_mutated(self, composer, salary_event):
        """Test that the base events keep their identity."""
        original_id = salary_event.id

        composer.compose([salary_event], _result([_contribution(100)]))

        assert salary_event.id == original_id

    def test_explicit_plan_name(self, composer):
        """Test that a given plan name wins over the suggestion."""
        assert composer.compose([], _result(), plan_name="My Plan").plan_name == "My Plan"

    def test_unsuccessful_result_leaves_plan_unchanged(self, composer, salary_event):
        """Test that a failed result adds nothing."""
        plan = composer.compose([salary_event], _result([_contribution(100)], success=False))

        assert [e.name for e in plan.events] == ["Salary"]
        assert plan.applied_modifications == 0

    def test_invalid_match_mode(self):
        """Test the supported match modes."""
        with pytest.raises(ValueError, match="Unsupported match mode"):
            PlanCompositionService("fuzzy")


class TestModifications:
    """Test how modified events find their targets."""

    def test_replace_by_original_id(self, composer, salary_event):
        """Test in-place replacement keeping the plan position."""
        existing = _contribution(1833)
        updated = existing.model_copy(update={"amount": 2000})

        plan = composer.compose(
            [existing, salary_event],
            _result(modified=[ModifiedEvent(original_event_id=existing.id, modified_event=updated)]),
        )

        assert [e.name for e in plan.events] == ["Monthly 401(k) Contribution", "Salary"]
        assert plan.events[0].amount == 2000
        assert plan.events[0].id != existing.id
        assert plan.applied_modifications == 1

    def test_replace_by_strategy_key(self, composer):
        """Test the fallback to (type, strategy id, account tag)."""
        existing = _contribution(1833)
        updated = _contribution(2000, name="Renamed Contribution")

        plan = composer.compose(
            [existing],
            _result(modified=[ModifiedEvent(original_event_id="stale-id", modified_event=updated)]),
        )

        assert len(plan.events) == 1
        assert plan.events[0].name == "Renamed Contribution"
        assert plan.applied_modifications == 1

    def test_name_match_only_in_loose_mode(self, salary_event):
        """Test that (name, type) matching is opt-in."""
        base = [salary_event, _rent(2000)]
        modification = ModifiedEvent(original_event_id="stale-id", modified_event=_rent(2500))

        strict = PlanCompositionService("strict").compose(base, _result(modified=[modification]))
        loose = PlanCompositionService("loose").compose(base, _result(modified=[modification]))

        assert strict.dropped_modifications == 1
        assert strict.events[1].amount == 2000
        assert loose.applied_modifications == 1
        assert loose.events[1].amount == 2500

    def test_ambiguous_loose_match_uses_first(self):
        """Test that the first of several same-named events is replaced."""
        base = [_rent(1000), _rent(2000)]
        modification = ModifiedEvent(original_event_id="stale-id", modified_event=_rent(3000))

        plan = PlanCompositionService("loose").compose(base, _result(modified=[modification]))

        assert [e.amount for e in plan.events] == [3000, 2000]

    def test_each_event_replaced_once(self, composer):
        """Test that two modifications cannot both claim one event."""
        existing = _contribution(1833)
        first = ModifiedEvent(original_event_id=existing.id, modified_event=_contribution(2000))
        second = ModifiedEvent(original_event_id=existing.id, modified_event=_contribution(2500))

        plan = composer.compose([existing], _result(modified=[first, second]))

        assert plan.applied_modifications == 1
        assert plan.dropped_modifications == 1
        assert plan.events[0].amount == 2000

    def test_missing_target_dropped(self, composer, salary_event):
        """Test that an unmatched modification is a silent no-op."""
        modification = ModifiedEvent(original_event_id="stale-id", modified_event=_contribution(2000))

        plan = composer.compose([salary_event], _result(modified=[modification]))

        assert [e.name for e in plan.events] == ["Salary"]
        assert plan.dropped_modifications == 1


class TestDuplicates:
    """Test de-duplication of generated strategy output."""

    def test_generated_duplicate_of_base_dropped(self, composer):
        """Test that output already in the plan is not added twice."""
        existing = _contribution(1833)

        plan = composer.compose([existing], _result([_contribution(1833)]))

        assert len(plan.events) == 1
        assert plan.dropped_duplicates == 1

    def test_generated_occurrences_kept(self, composer):
        """Test that occurrences sharing a key within one result are all kept."""
        occurrences = [_contribution(7000, tag="backdoor_ira") for _ in range(3)]

        plan = composer.compose([], _result(occurrences))

        assert len(plan.events) == 3
        assert plan.dropped_duplicates == 0

    def test_user_events_never_deduplicated(self, composer):
        """Test that non-strategy events with equal content are kept."""
        plan = composer.compose([_rent()], _result([_rent()]))

        assert len(plan.events) == 2
