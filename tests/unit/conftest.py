"""Unit test fixtures (breakers and budgets on a fake clock).

Provides retry-core components wired to the shared FakeClock so tests can
move time explicitly instead of sleeping.
"""

import pytest

from deepsource_mcp.retry.budget import RetryBudget, RetryBudgetRegistry
from deepsource_mcp.retry.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)


@pytest.fixture
def breaker_config() -> CircuitBreakerConfig:
    """Default thresholds: 5 failures / 60s window, 30s recovery, 3 successes to close."""
    return CircuitBreakerConfig()


@pytest.fixture
def breaker(clock, breaker_config) -> CircuitBreaker:
    return CircuitBreaker("projects", breaker_config, clock=clock, metrics_enabled=False)


@pytest.fixture
def breaker_registry(clock) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(clock=clock, metrics_enabled=False)


@pytest.fixture
def budget(clock) -> RetryBudget:
    return RetryBudget(capacity=3, window_ms=60000, clock=clock, name="runs")


@pytest.fixture
def budget_registry(clock) -> RetryBudgetRegistry:
    return RetryBudgetRegistry(capacity=3, window_ms=60000, clock=clock, metrics_enabled=False)
