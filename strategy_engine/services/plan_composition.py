"""
Plan composition.

Merges a strategy result into a base plan: new events are appended,
modified events replace their targets in place, and strategy output that
is already present is not added twice.
"""

import logging
from typing import Any, List, Optional, Set

from pydantic import BaseModel, Field

from ..models.events import FinancialEvent, new_event_id
from ..models.strategy import ModifiedEvent, StrategyResult

logger = logging.getLogger(__name__)

MATCH_MODES = ("strict", "loose")


class ComposedPlan(BaseModel):
    """A base plan with one strategy result applied."""

    plan_id: str = Field(default_factory=lambda: new_event_id("plan"), description="New plan id")
    plan_name: str = Field(..., description="Display name of the composed plan")
    events: List[FinancialEvent] = Field(default_factory=list, description="Merged events")
    applied_modifications: int = Field(default=0, ge=0, description="Modifications applied")
    dropped_modifications: int = Field(
        default=0, ge=0, description="Modifications whose target was not found"
    )
    dropped_duplicates: int = Field(
        default=0, ge=0, description="Generated events already present in the base plan"
    )


class PlanCompositionService:
    """
    Applies strategy results to plans.

    Modified events find their target by original id first, then by strategy
    key (type, strategy id, account tag). In ``loose`` mode a final fallback
    matches on (name, type).
    """

    def __init__(self, match_mode: str = "strict"):
        if match_mode not in MATCH_MODES:
            raise ValueError(f"Unsupported match mode: {match_mode}")
        self.match_mode = match_mode

    def compose(
        self,
        base_plan_events: List[Any],
        result: StrategyResult,
        plan_name: Optional[str] = None,
    ) -> ComposedPlan:
        """
        Build a new plan from base events and a strategy result.

        Args:
            base_plan_events: Events of the plan the strategy ran against
            result: Strategy result to apply
            plan_name: Name for the new plan; the result's suggestion when None

        Returns:
            ComposedPlan with fresh ids for every event
        """
        name = plan_name or result.new_plan_name or "Composed Plan"

        original_ids = [event.id for event in base_plan_events]
        events = [
            event.model_copy(deep=True, update={"id": new_event_id()})
            for event in base_plan_events
        ]

        if not result.success:
            logger.warning(
                f"Composing plan from unsuccessful result of {result.strategy_id}; base plan unchanged"
            )
            return ComposedPlan(plan_name=name, events=events)

        applied = dropped = 0
        replaced: Set[int] = set()
        for modification in result.modified_events:
            index = self._find_target(modification, original_ids, events, replaced)
            if index is None:
                logger.info(
                    f"No target for modification of {modification.original_event_id} "
                    f"({modification.modified_event.name}); skipped"
                )
                dropped += 1
                continue
            events[index] = modification.modified_event.model_copy(
                deep=True, update={"id": events[index].id}
            )
            replaced.add(index)
            applied += 1

        existing_keys = {event.strategy_key for event in events if event.is_strategy_event}
        duplicates = 0
        for generated in result.generated_events:
            event = generated.event
            if event.is_strategy_event and event.strategy_key in existing_keys:
                logger.warning(
                    f"Dropping generated event {event.name}: strategy output {event.strategy_key} "
                    "already in plan"
                )
                duplicates += 1
                continue
            events.append(event.model_copy(deep=True, update={"id": new_event_id()}))

        logger.info(
            f"Composed plan '{name}': {len(events)} events, {applied} modifications applied, "
            f"{dropped} dropped, {duplicates} duplicates skipped"
        )
        return ComposedPlan(
            plan_name=name,
            events=events,
            applied_modifications=applied,
            dropped_modifications=dropped,
            dropped_duplicates=duplicates,
        )

    def _find_target(
        self,
        modification: ModifiedEvent,
        original_ids: List[str],
        events: List[Any],
        replaced: Set[int],
    ) -> Optional[int]:
        for index, original_id in enumerate(original_ids):
            if original_id == modification.original_event_id and index not in replaced:
                return index

        modified = modification.modified_event
        if modified.is_strategy_event:
            for index, event in enumerate(events):
                if index not in replaced and event.strategy_key == modified.strategy_key:
                    return index

        if self.match_mode != "loose":
            return None

        candidates = [
            index
            for index, event in enumerate(events)
            if index not in replaced and event.name == modified.name and event.type == modified.type
        ]
        if len(candidates) > 1:
            logger.warning(
                f"Ambiguous match for {modified.name} ({modified.type.value}): "
                f"{len(candidates)} candidates, using the first"
            )
        return candidates[0] if candidates else None
