"""Strategy Execution Engine Flask Application Factory."""

from typing import Optional

from flask import Flask

from strategy_engine.config import get_global_settings
from strategy_engine.logging_config import configure_logging
from strategy_engine.services import (
    PlanCompositionService,
    StrategyBatchProcessor,
    StrategyExecutionService,
    StrategyRegistry,
    create_default_registry,
)


def create_app(
    config_name: Optional[str] = None, registry: Optional[StrategyRegistry] = None
) -> Flask:
    """Create and configure the Flask application.

    Args:
        config_name: Configuration name (development, testing, production)
        registry: Strategy registry to serve; the built-in strategies when None

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)

    # Configuration from Pydantic Settings
    settings = get_global_settings()
    app.config["SECRET_KEY"] = settings.secret_key
    app.config["ENV"] = settings.flask_env
    app.config["DEBUG"] = settings.app_env == "development"
    app.config["TESTING"] = (config_name or settings.app_env) == "testing"

    configure_logging(settings.log_level)

    # Strategy catalog and services, built once per app
    if registry is None:
        registry = create_default_registry(settings)
    app.extensions["strategy_registry"] = registry
    execution = StrategyExecutionService(registry, horizon_years=settings.schedule_horizon_years)
    composition = PlanCompositionService(settings.merge_match_mode)
    app.extensions["strategy_execution"] = execution
    app.extensions["plan_composition"] = composition
    app.extensions["strategy_batch"] = StrategyBatchProcessor(execution, composition)

    # Register blueprints
    from strategy_engine.blueprints.health import health_bp
    from strategy_engine.blueprints.strategies import plans_bp, strategies_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(strategies_bp)
    app.register_blueprint(plans_bp)

    return app
