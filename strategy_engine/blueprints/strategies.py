"""
Strategy catalog and execution blueprints.

This module exposes the strategy registry over HTTP: listing strategies,
checking which fit a plan, running one or a batch and composing results into a
new plan.
"""

from typing import Any, Dict, Tuple

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from strategy_engine.models.events import parse_events
from strategy_engine.models.strategy import ExecutionContext, PlanConfig, StrategyResult
from strategy_engine.services import (
    PlanCompositionService,
    StrategyBatchProcessor,
    StrategyExecutionService,
)
from strategy_engine.services.registry import StrategyRegistry

strategies_bp = Blueprint("strategies", __name__, url_prefix="/api/strategies")
plans_bp = Blueprint("plans", __name__, url_prefix="/api/plans")


class BadRequest(ValueError):
    """Malformed request body."""


def _registry() -> StrategyRegistry:
    return current_app.extensions["strategy_registry"]


def _execution() -> StrategyExecutionService:
    return current_app.extensions["strategy_execution"]


def _composition() -> PlanCompositionService:
    return current_app.extensions["plan_composition"]


def _batch() -> StrategyBatchProcessor:
    return current_app.extensions["strategy_batch"]


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def _context_from(data: Dict[str, Any]) -> ExecutionContext:
    """Execution context from a ``{events, config, user_inputs}`` body."""
    user_inputs = data.get("user_inputs") or {}
    if not isinstance(user_inputs, dict):
        raise BadRequest("user_inputs must be an object")
    config = data.get("config")
    return _execution().build_context(
        current_events=parse_events(data.get("events") or []),
        config=PlanConfig.model_validate(config) if config else None,
        user_inputs=user_inputs,
    )


def _bad_request(message: str) -> Tuple[Any, int]:
    return jsonify({"error": "Invalid request", "message": message}), 400


def _definition_json(strategy) -> Dict[str, Any]:
    data = strategy.definition.model_dump(mode="json")
    data["category_name"] = StrategyRegistry.category_name(strategy.category)
    return data


@strategies_bp.route("", methods=["GET"])
def list_strategies() -> Any:
    """List registered strategies, optionally filtered by ``?category=``.

    Returns:
        JSON response with strategy definitions
    """
    try:
        category = request.args.get("category")
        registry = _registry()
        strategies = registry.get_by_category(category) if category else registry.get_all()
        return jsonify({"strategies": [_definition_json(s) for s in strategies]}), 200

    except ValueError:
        return _bad_request(f"Unknown category: {request.args.get('category')}")
    except Exception as e:
        current_app.logger.error(f"Error listing strategies: {str(e)}")
        return jsonify({"error": "Internal server error"}), 500


@strategies_bp.route("/<strategy_id>", methods=["GET"])
def get_strategy(strategy_id: str) -> Any:
    """Get one strategy definition.

    Args:
        strategy_id: Id of the strategy

    Returns:
        JSON response with the definition
    """
    strategy = _registry().get_by_id(strategy_id)
    if strategy is None:
        return jsonify({"error": "Strategy not found"}), 404
    return jsonify(_definition_json(strategy)), 200


@strategies_bp.route("/applicable", methods=["POST"])
def applicable_strategies() -> Any:
    """List strategies that fit the submitted plan.

    Returns:
        JSON response with applicable strategy ids, names and reasons
    """
    try:
        context = _context_from(_json_body())
        applicable = [
            {
                "id": strategy.id,
                "name": strategy.name,
                "category": strategy.category.value,
                "reasons": strategy.can_apply(context).reasons,
            }
            for strategy in _registry().get_applicable(context)
        ]
        return jsonify({"strategies": applicable}), 200

    except (BadRequest, ValidationError) as e:
        return _bad_request(str(e))
    except Exception as e:
        current_app.logger.error(f"Error checking applicable strategies: {str(e)}")
        return jsonify({"error": "Internal server error"}), 500


@strategies_bp.route("/compare", methods=["POST"])
def compare_strategies() -> Any:
    """Compare applicability and impact of several strategies.

    Returns:
        JSON response with one comparison per known strategy id
    """
    try:
        data = _json_body()
        strategy_ids = data.get("strategy_ids") or [s.id for s in _registry().get_all()]
        if not isinstance(strategy_ids, list):
            raise BadRequest("strategy_ids must be a list")
        comparisons = _execution().compare_strategies(strategy_ids, _context_from(data))
        return jsonify({"comparisons": [c.model_dump(mode="json") for c in comparisons]}), 200

    except (BadRequest, ValidationError) as e:
        return _bad_request(str(e))
    except Exception as e:
        current_app.logger.error(f"Error comparing strategies: {str(e)}")
        return jsonify({"error": "Internal server error"}), 500


@strategies_bp.route("/batch", methods=["POST"])
def run_batch() -> Any:
    """Run several strategies in sequence and compose their output.

    Returns:
        JSON BatchResult with conflicts and the composed plan
    """
    try:
        data = _json_body()
        strategy_ids = data.get("strategy_ids")
        if not isinstance(strategy_ids, list) or not strategy_ids:
            raise BadRequest("strategy_ids must be a non-empty list")
        inputs_by_id = data.get("inputs_by_id") or {}
        if not isinstance(inputs_by_id, dict) or not all(
            isinstance(inputs, dict) for inputs in inputs_by_id.values()
        ):
            raise BadRequest("inputs_by_id must map strategy ids to objects")
        batch = _batch().execute_batch(
            strategy_ids, _context_from(data), inputs_by_id, data.get("plan_name")
        )
        return jsonify(batch.model_dump(mode="json")), 200

    except (BadRequest, ValidationError) as e:
        return _bad_request(str(e))
    except Exception as e:
        current_app.logger.error(f"Error running strategy batch: {str(e)}")
        return jsonify({"error": "Internal server error"}), 500


@strategies_bp.route("/<strategy_id>/run", methods=["POST"])
def run_strategy(strategy_id: str) -> Any:
    """Run a strategy against the submitted plan.

    Args:
        strategy_id: Id of the strategy to run

    Returns:
        JSON StrategyResult; 200 even when the strategy did not succeed
    """
    if strategy_id not in _registry():
        return jsonify({"error": "Strategy not found"}), 404

    try:
        context = _context_from(_json_body())
        result = _execution().run(strategy_id, context)
        return jsonify(result.model_dump(mode="json")), 200

    except (BadRequest, ValidationError) as e:
        return _bad_request(str(e))
    except Exception as e:
        current_app.logger.error(f"Error running strategy {strategy_id}: {str(e)}")
        return jsonify({"error": "Internal server error"}), 500


@strategies_bp.route("/<strategy_id>/impact", methods=["POST"])
def strategy_impact(strategy_id: str) -> Any:
    """Estimate the impact of a strategy without generating events.

    Args:
        strategy_id: Id of the strategy

    Returns:
        JSON StrategyImpact
    """
    if strategy_id not in _registry():
        return jsonify({"error": "Strategy not found"}), 404

    try:
        context = _context_from(_json_body())
        impact = _execution().estimate_impact(strategy_id, context)
        return jsonify(impact.model_dump(mode="json")), 200

    except (BadRequest, ValidationError) as e:
        return _bad_request(str(e))
    except Exception as e:
        current_app.logger.error(f"Error estimating impact for {strategy_id}: {str(e)}")
        return jsonify({"error": "Internal server error"}), 500


@plans_bp.route("/compose", methods=["POST"])
def compose_plan() -> Any:
    """Apply a strategy result to a base plan.

    Returns:
        JSON ComposedPlan
    """
    try:
        data = _json_body()
        if "result" not in data:
            raise BadRequest("result is required")
        base_events = parse_events(data.get("base_events") or [])
        result = StrategyResult.model_validate(data["result"])
        plan = _composition().compose(base_events, result, data.get("plan_name"))
        return jsonify(plan.model_dump(mode="json")), 200

    except (BadRequest, ValidationError) as e:
        return _bad_request(str(e))
    except Exception as e:
        current_app.logger.error(f"Error composing plan: {str(e)}")
        return jsonify({"error": "Internal server error"}), 500
