"""Shared test fixtures and configuration for all tests.

This conftest.py provides common fixtures used across unit and integration tests:
settings with safe defaults, a controllable clock and a sleep that records
delays instead of waiting.
"""

import pytest

from deepsource_mcp.config import Settings
from deepsource_mcp.retry.budget import RetryBudgetRegistry
from deepsource_mcp.retry.circuit_breaker import CircuitBreakerRegistry
from deepsource_mcp.retry.executor import RetryExecutor
from deepsource_mcp.retry.policies import RetryPolicyRegistry


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    """Async sleep stand-in: records each delay and advances the clock by it."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.delays: list[float] = []

    async def __call__(self, ms: float) -> None:
        self.delays.append(ms)
        self.clock.advance(ms)


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults for local testing.

    Override specific settings in individual tests as needed:
        def test_something(test_settings):
            test_settings.CIRCUIT_BREAKER_THRESHOLD = 2
    """
    return Settings(
        # === Application ===
        APP_NAME="DeepSource MCP Server (Test)",
        APP_VERSION="0.1.0",
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",

        # === DeepSource API ===
        DEEPSOURCE_API_KEY="test-api-key",
        DEEPSOURCE_API_URL="https://api.deepsource.test/graphql/",
        DEEPSOURCE_TIMEOUT=5,

        # === Retry ===
        RETRY_MAX_TOTAL_DURATION_MS=120000,
        RETRY_BUDGET_PER_MINUTE=10,
        RETRY_BUDGET_WINDOW_MS=60000,

        # === Circuit breaker ===
        CIRCUIT_BREAKER_THRESHOLD=5,
        CIRCUIT_BREAKER_TIMEOUT_MS=30000,
        CIRCUIT_BREAKER_FAILURE_WINDOW_MS=60000,
        CIRCUIT_BREAKER_SUCCESS_THRESHOLD=3,
        CIRCUIT_BREAKER_HALF_OPEN_MAX_ATTEMPTS=5,

        PROMETHEUS_ENABLED=False,  # Disable metrics in tests unless explicitly needed
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def executor(clock: FakeClock, recording_sleep: RecordingSleep) -> RetryExecutor:
    """Executor with default policies, a fake clock and a non-blocking sleep."""
    return RetryExecutor(
        policies=RetryPolicyRegistry(),
        breakers=CircuitBreakerRegistry(clock=clock, metrics_enabled=False),
        budgets=RetryBudgetRegistry(clock=clock, metrics_enabled=False),
        sleep=recording_sleep,
        clock=clock,
        metrics_enabled=False,
    )
