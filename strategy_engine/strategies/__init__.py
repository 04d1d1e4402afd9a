"""
Pluggable financial strategies.

Each strategy satisfies the ``Strategy`` protocol from ``base`` and is
registered with a StrategyRegistry at startup.
"""

from .base import Strategy
from .contribution_optimization import ContributionOptimizationStrategy
from .debt_payoff import DebtPayoffStrategy
from .glide_path import GlidePathStrategy
from .investment import InvestmentContributionStrategy

__all__ = [
    "Strategy",
    "ContributionOptimizationStrategy",
    "DebtPayoffStrategy",
    "GlidePathStrategy",
    "InvestmentContributionStrategy",
]
