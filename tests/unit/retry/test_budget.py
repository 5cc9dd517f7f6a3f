"""
Unit tests for retry budgets (per endpoint and global).
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from deepsource_mcp.retry.budget import GLOBAL_BUDGET_KEY, RetryBudget, RetryBudgetRegistry


# ============================================================================
# RetryBudget
# ============================================================================


def test_budget_consumes_up_to_capacity(budget):
    assert [budget.consume() for _ in range(4)] == [True, True, True, False]
    assert budget.remaining() == 0
    assert not budget.can_retry()


def test_budget_refusal_counts_exhaustion(budget, clock):
    for _ in range(3):
        budget.consume()

    budget.consume()

    stats = budget.get_stats()
    assert stats.consumed_in_window == 3
    assert stats.exhaustion_count == 1
    assert stats.last_exhausted_at == clock.now


def test_budget_check_capacity_records_exhaustion(budget, clock):
    assert budget.check_capacity()
    for _ in range(3):
        budget.consume()

    assert not budget.check_capacity()

    stats = budget.get_stats()
    assert stats.consumed_in_window == 3
    assert stats.exhaustion_count == 1
    assert stats.last_exhausted_at == clock.now


def test_budget_window_resets(budget, clock):
    """Test the counter resets once the window has elapsed."""
    for _ in range(3):
        budget.consume()
    clock.advance(59999)
    assert not budget.can_retry()

    clock.advance(1)

    assert budget.can_retry()
    assert budget.remaining() == 3
    assert budget.get_stats().window_started_at == clock.now


def test_budget_reset(budget):
    for _ in range(4):
        budget.consume()

    budget.reset()

    stats = budget.get_stats()
    assert stats.remaining == 3
    assert stats.exhaustion_count == 0
    assert stats.last_exhausted_at is None


def test_budget_zero_capacity_never_grants(clock):
    budget = RetryBudget(capacity=0, clock=clock)

    assert not budget.can_retry()
    assert not budget.consume()


@pytest.mark.parametrize("capacity, window_ms", [(-1, 1000), (1, 0)])
def test_budget_rejects_invalid_configuration(capacity, window_ms):
    with pytest.raises(ValueError):
        RetryBudget(capacity=capacity, window_ms=window_ms)


# ============================================================================
# RetryBudgetRegistry
# ============================================================================


def test_registry_budgets_are_per_endpoint(budget_registry):
    for _ in range(3):
        assert budget_registry.consume_retry("runs")

    assert not budget_registry.can_retry("runs")
    assert budget_registry.can_retry("projects")


def test_registry_consume_charges_endpoint_and_global(budget_registry):
    budget_registry.consume_retry("runs")

    stats = budget_registry.all_stats()
    assert stats["runs"].consumed_in_window == 1
    assert stats[GLOBAL_BUDGET_KEY].consumed_in_window == 1
    assert stats[GLOBAL_BUDGET_KEY].capacity == 9


def test_registry_global_budget_caps_all_endpoints(clock):
    registry = RetryBudgetRegistry(capacity=3, global_capacity=4, clock=clock, metrics_enabled=False)
    for _ in range(3):
        assert registry.consume_retry("runs")
    assert registry.consume_retry("projects")

    assert not registry.consume_retry("projects")
    assert not registry.can_retry("quality_metrics")


def test_registry_refusal_charges_neither_budget(clock):
    """Test a refused retry leaves both budgets untouched."""
    registry = RetryBudgetRegistry(capacity=3, global_capacity=1, clock=clock, metrics_enabled=False)
    registry.consume_retry("runs")

    assert not registry.consume_retry("runs")

    assert registry.get_stats("runs").consumed_in_window == 1
    assert registry.global_budget.get_stats().consumed_in_window == 1


def test_registry_capacity_applies_on_creation_only(budget_registry):
    created = budget_registry.get_budget("projects", capacity=1)

    assert created.capacity == 1
    assert budget_registry.get_budget("projects", capacity=50) is created


def test_registry_reset_single_endpoint(budget_registry):
    for _ in range(3):
        budget_registry.consume_retry("runs")
    budget_registry.consume_retry("projects")

    budget_registry.reset("runs")

    assert budget_registry.get_stats("runs").remaining == 3
    assert budget_registry.get_stats("projects").remaining == 2
    assert budget_registry.global_budget.remaining() == 5


def test_registry_reset_all_includes_global(budget_registry):
    for _ in range(3):
        budget_registry.consume_retry("runs")

    budget_registry.reset()

    stats = budget_registry.all_stats()
    assert stats["runs"].remaining == 3
    assert stats[GLOBAL_BUDGET_KEY].remaining == 9


def test_registry_from_settings(test_settings, clock):
    test_settings.RETRY_BUDGET_PER_MINUTE = 4
    test_settings.RETRY_GLOBAL_BUDGET_PER_MINUTE = 6

    registry = RetryBudgetRegistry.from_settings(test_settings, clock=clock)

    assert registry.get_budget("runs").capacity == 4
    assert registry.global_budget.capacity == 6


# ============================================================================
# Concurrency
# ============================================================================


def test_registry_concurrent_consumers_get_exactly_capacity(clock):
    """Test 8 threads racing for one endpoint are granted exactly its capacity."""
    registry = RetryBudgetRegistry(capacity=50, clock=clock, metrics_enabled=False)
    start = threading.Barrier(8)

    def consume_many(_: int) -> int:
        start.wait()
        return sum(registry.consume_retry("runs") for _ in range(100))

    with ThreadPoolExecutor(max_workers=8) as pool:
        granted = sum(pool.map(consume_many, range(8)))

    assert granted == 50
    stats = registry.all_stats()
    assert stats["runs"].consumed_in_window == 50
    assert stats["runs"].exhaustion_count == 8 * 100 - 50
    assert stats[GLOBAL_BUDGET_KEY].consumed_in_window == 50


def test_registry_concurrent_endpoints_share_global_budget(clock):
    registry = RetryBudgetRegistry(capacity=100, global_capacity=40, clock=clock, metrics_enabled=False)
    start = threading.Barrier(4)

    def consume_many(worker: int) -> int:
        start.wait()
        return sum(registry.consume_retry(f"endpoint-{worker}") for _ in range(50))

    with ThreadPoolExecutor(max_workers=4) as pool:
        granted = sum(pool.map(consume_many, range(4)))

    assert granted == 40
    stats = registry.all_stats()
    assert stats[GLOBAL_BUDGET_KEY].consumed_in_window == 40
    assert sum(stats[f"endpoint-{worker}"].consumed_in_window for worker in range(4)) == 40
