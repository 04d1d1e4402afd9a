"""
Pytest configuration and shared fixtures for the strategy engine tests.
"""

from datetime import date

import pytest

from strategy_engine.config import Settings, reset_global_settings
from strategy_engine.models.events import EventType
from strategy_engine.models.strategy import ExecutionContext, PlanConfig
from strategy_engine.services import StrategyExecutionService, create_default_registry
from strategy_engine.strategies.base import build_event

TODAY = date(2025, 1, 1)


@pytest.fixture(autouse=True)
def clean_global_settings():
    """Make every test start from freshly loaded settings."""
    reset_global_settings()
    yield
    reset_global_settings()


@pytest.fixture
def plan_config():
    """A 35 year old retiring at 65, plan starting 2025."""
    return PlanConfig(simulation_start_year=2025, current_age=35, retirement_age=65)


@pytest.fixture
def salary_event():
    """Annual salary of $120,000."""
    return build_event(
        EventType.INCOME,
        name="Salary",
        description="Primary salary",
        amount=120000,
        frequency="annually",
    )


@pytest.fixture
def debt_events():
    """Credit card, car loan and student loan liabilities."""
    return [
        build_event(
            EventType.LIABILITY_ADD,
            name="Credit Card",
            description="Revolving balance",
            balance=8000,
            annual_interest_rate=0.22,
            monthly_payment=200,
        ),
        build_event(
            EventType.LIABILITY_ADD,
            name="Car Loan",
            description="Auto loan",
            balance=15000,
            annual_interest_rate=0.06,
            monthly_payment=350,
        ),
        build_event(
            EventType.LIABILITY_ADD,
            name="Student Loan",
            description="Federal loan",
            principal=5000,
            annual_interest_rate=0.045,
            monthly_payment=100,
        ),
    ]


@pytest.fixture
def make_context(plan_config):
    """Factory for execution contexts dated TODAY."""

    def _make(events=(), user_inputs=None, config=None):
        return ExecutionContext.create(
            current_events=list(events),
            config=config or plan_config,
            user_inputs=user_inputs,
            today=TODAY,
        )

    return _make


@pytest.fixture
def settings():
    """Settings that ignore any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def registry(settings):
    """Registry with the built-in strategies and no simulation engine."""
    return create_default_registry(settings, engine=None)


@pytest.fixture
def service(registry):
    """Execution service with a fixed clock."""
    return StrategyExecutionService(registry, clock=lambda: TODAY, horizon_years=30)
