"""Health check blueprint."""

from flask import Blueprint, Response, current_app, jsonify

health_bp = Blueprint("health", __name__)


@health_bp.route("/healthz")
def health_check() -> Response:
    """Health check endpoint.

    Returns:
        JSON response with status and the number of registered strategies
    """
    registry = current_app.extensions["strategy_registry"]
    return jsonify({"status": "ok", "strategies": len(registry)})
