"""
Strategy contract and shared helpers.

Every strategy satisfies the ``Strategy`` protocol. Common work (input
validation, event and result construction, growth math, ledger inspection)
lives in the free functions below so strategies compose them instead of
inheriting from a shared base class.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, runtime_checkable

from deepdiff import DeepDiff
from deepdiff.helper import notpresent

from ..models.events import EventType, StrategyMetadata, new_event_id, variant_for
from ..models.strategy import (
    ApplicabilityResult,
    ExecutionContext,
    FieldChange,
    GeneratedEvent,
    InputValidation,
    ModifiedEvent,
    ParameterSchema,
    PolicySummary,
    Recommendation,
    StrategyCategory,
    StrategyDefinition,
    StrategyImpact,
    StrategyResult,
)

logger = logging.getLogger(__name__)

INCOME_TYPES = {EventType.INCOME, EventType.CASHFLOW_INCOME}
LIABILITY_TYPES = {EventType.LIABILITY_ADD, EventType.LIABILITY}


@runtime_checkable
class Strategy(Protocol):
    """
    Capability every strategy provides.

    Implementations are stateless apart from injected collaborators:
    ``execute`` and ``estimate_impact`` are functions of the context only.
    """

    id: str
    name: str
    category: StrategyCategory
    definition: StrategyDefinition

    def get_parameters(self) -> ParameterSchema:
        """Parameter schema rendered by the presentation layer."""
        ...

    def can_apply(self, context: ExecutionContext) -> ApplicabilityResult:
        """Whether the strategy fits the plan, with reasons either way."""
        ...

    def validate_inputs(self, inputs: Dict[str, Any]) -> InputValidation:
        """Field-level validation of submitted parameters. Never raises."""
        ...

    def execute(self, context: ExecutionContext) -> StrategyResult:
        """Produce events, recommendations and impact for the context."""
        ...

    def estimate_impact(self, context: ExecutionContext) -> StrategyImpact:
        """Projected effect of the strategy without generating events."""
        ...


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


def is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_parameters(schema: ParameterSchema, inputs: Dict[str, Any]) -> InputValidation:
    """
    Validate submitted values against a parameter schema.

    Checks required-ness, numeric type and range, selection membership and
    custom validators. At most one error is reported per field, custom
    validators taking precedence over range errors.

    Args:
        schema: Parameter name to spec
        inputs: Submitted values

    Returns:
        InputValidation with an error message per invalid field
    """
    errors: Dict[str, str] = {}

    for key, spec in schema.items():
        value = inputs.get(key)

        if spec.required and (value is None or value == ""):
            errors[key] = f"{spec.label} is required"
            continue

        if value is None:
            continue

        if spec.type in ("number", "percentage"):
            if not is_number(value):
                errors[key] = f"{spec.label} must be a valid number"
                continue
            if spec.min is not None and value < spec.min:
                errors[key] = f"{spec.label} must be at least {spec.min:g}"
            if spec.max is not None and value > spec.max:
                errors[key] = f"{spec.label} must be at most {spec.max:g}"

        if spec.type == "boolean" and not isinstance(value, bool):
            errors[key] = f"{spec.label} must be true or false"
            continue

        if spec.type == "selection" and spec.options:
            valid_values = spec.option_values
            if value not in valid_values:
                errors[key] = (
                    f"{spec.label} must be one of: {', '.join(str(v) for v in valid_values)}"
                )

        if spec.validation is not None:
            custom_error = spec.validation(value)
            if custom_error:
                errors[key] = custom_error

    return InputValidation(valid=not errors, errors=errors)


def resolve_inputs(schema: ParameterSchema, inputs: Dict[str, Any]) -> Dict[str, Any]:
    """Submitted values with schema defaults filled in for missing keys."""
    resolved = {key: spec.default_value for key, spec in schema.items()}
    resolved.update({key: value for key, value in inputs.items() if value is not None})
    return resolved


# ---------------------------------------------------------------------------
# Event and result builders
# ---------------------------------------------------------------------------


def build_event(
    event_type: EventType,
    name: str,
    description: str,
    amount: float = 0.0,
    **fields: Any,
):
    """Create a FinancialEvent of the variant owning ``event_type``."""
    model = variant_for(event_type)
    return model(
        type=EventType(event_type),
        name=name,
        description=description,
        amount=amount,
        **fields,
    )


def strategy_event(
    event: Any,
    reason: str,
    importance: str = "MEDIUM",
    is_editable: bool = True,
) -> GeneratedEvent:
    return GeneratedEvent(
        event=event,
        reason=reason,
        is_editable=is_editable,
        linked_to_strategy=True,
        importance=importance,
    )


def recommendation(
    title: str,
    description: str,
    type: str = "ACTION",
    priority: str = "MEDIUM",
    estimated_benefit: str = "",
    time_to_implement: str = "",
    difficulty: str = "MODERATE",
) -> Recommendation:
    return Recommendation(
        id=new_event_id("rec"),
        title=title,
        description=description,
        type=type,
        priority=priority,
        estimated_benefit=estimated_benefit,
        time_to_implement=time_to_implement,
        difficulty=difficulty,
    )


def success_result(
    strategy: Strategy,
    new_plan_name: str,
    generated_events: List[GeneratedEvent],
    recommendations: List[Recommendation],
    impact: StrategyImpact,
    warnings: Optional[List[str]] = None,
    next_steps: Optional[List[str]] = None,
    modified_events: Optional[List[ModifiedEvent]] = None,
    policy: Optional[PolicySummary] = None,
) -> StrategyResult:
    return StrategyResult(
        success=True,
        strategy_id=strategy.id,
        strategy_name=strategy.name,
        new_plan_name=new_plan_name,
        generated_events=generated_events,
        modified_events=modified_events or [],
        recommendations=recommendations,
        estimated_impact=impact,
        warnings=warnings or [],
        next_steps=next_steps or [],
        policy=policy,
    )


def failure_result(strategy_id: str, strategy_name: str, reasons: List[str]) -> StrategyResult:
    return StrategyResult(
        success=False,
        strategy_id=strategy_id,
        strategy_name=strategy_name,
        estimated_impact=empty_impact(),
        warnings=list(reasons),
    )


# ---------------------------------------------------------------------------
# Impact math
# ---------------------------------------------------------------------------


def future_value(annual_contribution: float, rate: float, years: float) -> float:
    """Future value of a level annual contribution (ordinary annuity)."""
    if rate == 0:
        return annual_contribution * years
    return annual_contribution * ((1 + rate) ** years - 1) / rate


def empty_impact() -> StrategyImpact:
    return StrategyImpact()


# ---------------------------------------------------------------------------
# Ledger inspection
# ---------------------------------------------------------------------------


def estimate_monthly_income(events: Iterable[Any]) -> float:
    """Monthly income implied by annual income events."""
    return sum(event.amount / 12 for event in events if event.type in INCOME_TYPES)


def has_existing_debt(events: Iterable[Any]) -> bool:
    return any(event.type in LIABILITY_TYPES for event in events)


def find_strategy_event(
    events: Iterable[Any],
    event_type: EventType,
    strategy_id: str,
    account_tag: Optional[str] = None,
):
    """
    Find an event a strategy produced on an earlier run.

    Matching is keyed on (event type, metadata.strategy_id, account tag),
    where the account tag is ``metadata.account_preference`` or else the
    event's ``target_account_type``.

    Returns:
        The first matching event, or None
    """
    matches = find_strategy_events(events, event_type, strategy_id, account_tag)
    return matches[0] if matches else None


def find_strategy_events(
    events: Iterable[Any],
    event_type: EventType,
    strategy_id: str,
    account_tag: Optional[str] = None,
) -> List[Any]:
    """All events matching a strategy key, in ledger order."""
    key = (EventType(event_type).value, strategy_id, account_tag)
    return [event for event in events if event.strategy_key == key]


_IGNORED_DIFF_PATHS = ["root['id']", "root['metadata']['last_updated']"]


def record_changes(existing: Any, replacement: Any, reason: str = "") -> List[FieldChange]:
    """
    List the fields that differ between an event and its replacement.

    Identity and the ``last_updated`` stamp are ignored. Field paths are
    dotted, e.g. ``amount`` or ``metadata.notes``.
    """
    diff = DeepDiff(
        existing.model_dump(mode="json"),
        replacement.model_dump(mode="json"),
        exclude_paths=_IGNORED_DIFF_PATHS,
        view="tree",
    )

    changes = []
    for report in (
        "values_changed",
        "type_changes",
        "dictionary_item_added",
        "dictionary_item_removed",
    ):
        for level in diff.get(report, []):
            path = ".".join(str(part) for part in level.path(output_format="list"))
            changes.append(
                FieldChange(
                    field=path,
                    old_value=None if level.t1 is notpresent else level.t1,
                    new_value=None if level.t2 is notpresent else level.t2,
                    reason=reason,
                )
            )

    changes.sort(key=lambda change: change.field)
    logger.debug(f"Recorded {len(changes)} field changes for event {existing.id}")
    return changes


def generate_or_modify(
    existing_events: Iterable[Any],
    event: Any,
    reason: str,
    importance: str = "MEDIUM",
    change_reason: str = "",
    update_fields: Tuple[str, ...] = ("amount", "description"),
) -> Tuple[Optional[GeneratedEvent], Optional[ModifiedEvent]]:
    """
    Propose ``event`` unless the strategy already produced its counterpart.

    When an earlier run left an event with the same strategy key, that
    event is updated in place (``update_fields`` plus merged metadata) and
    returned as a ModifiedEvent. Otherwise ``event`` is returned as a new
    GeneratedEvent.

    Returns:
        (generated, modified); exactly one of them is set
    """
    existing = find_strategy_event(
        existing_events, event.type, event.metadata.strategy_id, event.account_tag
    )
    if existing is None:
        return strategy_event(event, reason, importance), None

    return None, modify_event(existing, event, change_reason, update_fields)


def modify_event(
    existing: Any,
    event: Any,
    change_reason: str = "",
    update_fields: Tuple[str, ...] = ("amount", "description"),
) -> ModifiedEvent:
    """Update an earlier strategy event from a freshly built one."""
    metadata = {
        **existing.metadata.model_dump(),
        **event.metadata.model_dump(exclude_none=True),
        "last_updated": datetime.now(),
    }
    update = {field: getattr(event, field) for field in update_fields}
    update["metadata"] = StrategyMetadata(**metadata)
    modified = existing.model_copy(update=update)

    logger.info(f"Updating existing event {existing.id} ({existing.name}) for {event.metadata.strategy_id}")
    return ModifiedEvent(
        original_event_id=existing.id,
        modified_event=modified,
        changes=record_changes(existing, modified, change_reason),
    )
