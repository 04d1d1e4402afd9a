"""
Strategy registry.

Holds the catalog of available strategies, keyed by id and kept in
registration order. The registry is built once at startup by
``create_default_registry`` and only read afterwards.
"""

import logging
from typing import Dict, List, Optional

from ..config import Settings, get_global_settings
from ..models.simulation import HttpSimulationEngine, SimulationEngine
from ..models.strategy import ExecutionContext, StrategyCategory
from ..strategies import (
    ContributionOptimizationStrategy,
    DebtPayoffStrategy,
    GlidePathStrategy,
    InvestmentContributionStrategy,
)
from ..strategies.base import Strategy

logger = logging.getLogger(__name__)

CATEGORY_NAMES = {
    StrategyCategory.DEBT_PAYOFF: "Debt Management",
    StrategyCategory.RETIREMENT_OPTIMIZATION: "Retirement Optimization",
    StrategyCategory.TAX_OPTIMIZATION: "Tax Optimization",
    StrategyCategory.EMERGENCY_FUND: "Emergency Fund",
    StrategyCategory.INVESTMENT_STRATEGY: "Investment Strategy",
    StrategyCategory.REAL_ESTATE: "Real Estate",
    StrategyCategory.COLLEGE_PLANNING: "College Planning",
    StrategyCategory.BUSINESS_STRATEGY: "Business Strategy",
    StrategyCategory.ESTATE_PLANNING: "Estate Planning",
    StrategyCategory.INSURANCE_OPTIMIZATION: "Insurance Optimization",
}


class StrategyNotFoundError(KeyError):
    """Raised when a strategy id is not registered."""

    def __init__(self, strategy_id: str):
        super().__init__(strategy_id)
        self.strategy_id = strategy_id

    def __str__(self) -> str:
        return f"Strategy not found: {self.strategy_id}"


class StrategyRegistry:
    """Append-only catalog of strategies."""

    def __init__(self) -> None:
        self._strategies: Dict[str, Strategy] = {}

    def register(self, strategy: Strategy) -> None:
        """Add a strategy.

        Raises:
            ValueError: If the id is already registered or the object does
                not satisfy the Strategy protocol
        """
        if not isinstance(strategy, Strategy):
            raise ValueError(f"{type(strategy).__name__} does not implement the Strategy protocol")
        if strategy.id in self._strategies:
            raise ValueError(f"Strategy already registered: {strategy.id}")
        self._strategies[strategy.id] = strategy
        logger.debug(f"Registered strategy {strategy.id} ({strategy.category.value})")

    def __len__(self) -> int:
        return len(self._strategies)

    def __contains__(self, strategy_id: object) -> bool:
        return strategy_id in self._strategies

    def get_all(self) -> List[Strategy]:
        return list(self._strategies.values())

    def get_by_id(self, strategy_id: str) -> Optional[Strategy]:
        return self._strategies.get(strategy_id)

    def require(self, strategy_id: str) -> Strategy:
        """Like ``get_by_id`` but raises StrategyNotFoundError for unknown ids."""
        strategy = self._strategies.get(strategy_id)
        if strategy is None:
            raise StrategyNotFoundError(strategy_id)
        return strategy

    def get_by_category(self, category: StrategyCategory) -> List[Strategy]:
        category = StrategyCategory(category)
        return [strategy for strategy in self._strategies.values() if strategy.category == category]

    def get_applicable(self, context: ExecutionContext) -> List[Strategy]:
        """
        Strategies whose ``can_apply`` accepts the context.

        A strategy that raises while checking is logged and left out, so one
        faulty strategy never hides the rest of the catalog.
        """
        applicable = []
        for strategy in self._strategies.values():
            try:
                if strategy.can_apply(context).applicable:
                    applicable.append(strategy)
            except Exception:
                logger.exception(f"Applicability check failed for strategy {strategy.id}")
        return applicable

    @staticmethod
    def category_name(category: StrategyCategory) -> str:
        """Display name of a category."""
        category = StrategyCategory(category)
        return CATEGORY_NAMES.get(category, category.value.replace("_", " ").title())


def create_simulation_engine(settings: Settings) -> Optional[SimulationEngine]:
    """HTTP simulation engine when a URL is configured, otherwise None."""
    if not settings.simulation_engine_url:
        return None
    return HttpSimulationEngine(
        base_url=settings.simulation_engine_url,
        timeout=settings.simulation_timeout_seconds,
    )


def create_default_registry(
    settings: Optional[Settings] = None,
    engine: Optional[SimulationEngine] = None,
) -> StrategyRegistry:
    """
    Build the registry with the built-in strategies.

    Args:
        settings: Settings to read the projection rate and engine URL from;
            global settings when omitted
        engine: Simulation engine for strategies that use one; built from
            settings when omitted

    Returns:
        StrategyRegistry holding every built-in strategy
    """
    settings = settings or get_global_settings()
    if engine is None:
        engine = create_simulation_engine(settings)

    registry = StrategyRegistry()
    registry.register(InvestmentContributionStrategy(return_rate=settings.projection_return_rate))
    registry.register(ContributionOptimizationStrategy(return_rate=settings.projection_return_rate))
    registry.register(GlidePathStrategy(engine=engine))
    registry.register(DebtPayoffStrategy())

    logger.info(f"Strategy registry ready with {len(registry)} strategies")
    return registry
