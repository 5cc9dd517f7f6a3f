"""
Retry budget per endpoint.

Caps how many retries (never first attempts) an endpoint may spend per time
window, whatever the failure pattern. The circuit breaker reacts to failure
density; the budget bounds retry volume, so one caller's request cannot be
amplified into a storm of downstream calls during a partial outage.

Every endpoint budget is backed by a shared process-wide budget (reported
as ``_global``); a retry is only granted when both have room.
"""

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import structlog

from deepsource_mcp.monitoring.metrics import retry_budget_exhausted_total
from deepsource_mcp.retry.backoff import monotonic_ms

if TYPE_CHECKING:
    from deepsource_mcp.config import Settings

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]

GLOBAL_BUDGET_KEY = "_global"
DEFAULT_CAPACITY = 10
DEFAULT_WINDOW_MS = 60000


@dataclass(frozen=True)
class BudgetStats:
    """Point-in-time snapshot of a budget."""

    consumed_in_window: int
    capacity: int
    remaining: int
    window_ms: int
    window_started_at: float
    exhaustion_count: int
    last_exhausted_at: Optional[float]


class RetryBudget:
    """
    Fixed-window retry allowance.

    ``consumed_in_window`` never exceeds ``capacity``; the counter resets
    lazily once ``window_ms`` has passed since the window started.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Clock = monotonic_ms,
        name: str = "",
    ):
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")

        self.name = name
        self.capacity = capacity
        self.window_ms = window_ms
        self._clock = clock
        self._lock = threading.RLock()
        self._consumed_in_window = 0
        self._window_started_at = clock()
        self._exhaustion_count = 0
        self._last_exhausted_at: Optional[float] = None

    def can_retry(self) -> bool:
        """Whether one more retry fits in the current window."""
        with self._lock:
            self._roll_window()
            return self._consumed_in_window < self.capacity

    def check_capacity(self) -> bool:
        """Like can_retry, but a full window counts as an exhaustion in the stats."""
        with self._lock:
            if self.can_retry():
                return True
            self._mark_exhausted()
            return False

    def consume(self) -> bool:
        """Take one retry from the window; False (and nothing taken) when spent."""
        with self._lock:
            self._roll_window()
            if self._consumed_in_window >= self.capacity:
                self._mark_exhausted()
                return False
            self._consumed_in_window += 1
            logger.debug(
                "Retry budget consumed",
                budget=self.name,
                consumed=self._consumed_in_window,
                capacity=self.capacity,
            )
            return True

    def remaining(self) -> int:
        with self._lock:
            self._roll_window()
            return self.capacity - self._consumed_in_window

    def get_stats(self) -> BudgetStats:
        with self._lock:
            self._roll_window()
            return BudgetStats(
                consumed_in_window=self._consumed_in_window,
                capacity=self.capacity,
                remaining=self.capacity - self._consumed_in_window,
                window_ms=self.window_ms,
                window_started_at=self._window_started_at,
                exhaustion_count=self._exhaustion_count,
                last_exhausted_at=self._last_exhausted_at,
            )

    def reset(self) -> None:
        with self._lock:
            self._consumed_in_window = 0
            self._window_started_at = self._clock()
            self._exhaustion_count = 0
            self._last_exhausted_at = None
        logger.info("Retry budget reset", budget=self.name)

    def _roll_window(self) -> None:
        now = self._clock()
        if now - self._window_started_at >= self.window_ms:
            if self._consumed_in_window:
                logger.debug(
                    "Retry budget window rolled over",
                    budget=self.name,
                    consumed=self._consumed_in_window,
                )
            self._consumed_in_window = 0
            self._window_started_at = now

    def _mark_exhausted(self) -> None:
        self._exhaustion_count += 1
        self._last_exhausted_at = self._clock()


class RetryBudgetRegistry:
    """
    Endpoint key -> RetryBudget, plus the shared global budget.

    Built once at process start and injected into the executor.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        window_ms: int = DEFAULT_WINDOW_MS,
        global_capacity: Optional[int] = None,
        clock: Clock = monotonic_ms,
        metrics_enabled: bool = True,
    ):
        self.capacity = capacity
        self.window_ms = window_ms
        self._clock = clock
        self._metrics_enabled = metrics_enabled
        self._budgets: dict[str, RetryBudget] = {}
        self._lock = threading.Lock()
        self.global_budget = RetryBudget(
            capacity=global_capacity if global_capacity is not None else capacity * 3,
            window_ms=window_ms,
            clock=clock,
            name=GLOBAL_BUDGET_KEY,
        )

    @classmethod
    def from_settings(cls, settings: "Settings", clock: Clock = monotonic_ms) -> "RetryBudgetRegistry":
        return cls(
            capacity=settings.RETRY_BUDGET_PER_MINUTE,
            window_ms=settings.RETRY_BUDGET_WINDOW_MS,
            global_capacity=settings.RETRY_GLOBAL_BUDGET_PER_MINUTE,
            clock=clock,
            metrics_enabled=settings.PROMETHEUS_ENABLED,
        )

    def get_budget(self, endpoint: str, capacity: Optional[int] = None) -> RetryBudget:
        """Budget for ``endpoint``; ``capacity`` only applies when it is created."""
        with self._lock:
            budget = self._budgets.get(endpoint)
            if budget is None:
                budget = RetryBudget(
                    capacity=self.capacity if capacity is None else capacity,
                    window_ms=self.window_ms,
                    clock=self._clock,
                    name=endpoint,
                )
                self._budgets[endpoint] = budget
                logger.debug("Created retry budget", endpoint=endpoint, capacity=budget.capacity)
            return budget

    def can_retry(self, endpoint: str) -> bool:
        """Whether both the endpoint and the global budget have room."""
        budget = self.get_budget(endpoint)
        with self._lock:
            allowed = self.global_budget.can_retry() and budget.can_retry()
        if not allowed:
            logger.warning(
                "Retry budget exhausted",
                endpoint=endpoint,
                endpoint_remaining=budget.remaining(),
                global_remaining=self.global_budget.remaining(),
            )
        return allowed

    def consume_retry(self, endpoint: str) -> bool:
        """
        Take one retry from the endpoint and the global budget.

        Either both are charged or neither is. Budgets handed out by the registry
        are meant to be charged only through it.
        """
        budget = self.get_budget(endpoint)
        with self._lock:
            granted = (
                budget.check_capacity()
                and self.global_budget.check_capacity()
                and budget.consume()
                and self.global_budget.consume()
            )

        if not granted:
            if self._metrics_enabled:
                retry_budget_exhausted_total.labels(endpoint=endpoint).inc()
            logger.warning(
                "Retry refused, budget spent",
                endpoint=endpoint,
                capacity=budget.capacity,
                global_capacity=self.global_budget.capacity,
            )
        return granted

    def get_stats(self, endpoint: str) -> BudgetStats:
        return self.get_budget(endpoint).get_stats()

    def all_stats(self) -> dict[str, BudgetStats]:
        with self._lock:
            budgets = list(self._budgets.items())
        stats = {GLOBAL_BUDGET_KEY: self.global_budget.get_stats()}
        stats.update({endpoint: budget.get_stats() for endpoint, budget in budgets})
        return stats

    def reset(self, endpoint: Optional[str] = None) -> None:
        """Reset one endpoint's budget, or every budget (global included) when None."""
        if endpoint is not None:
            with self._lock:
                budget = self._budgets.get(endpoint)
            if budget is not None:
                budget.reset()
            return

        with self._lock:
            budgets = list(self._budgets.values())
        self.global_budget.reset()
        for budget in budgets:
            budget.reset()
        logger.info("All retry budgets reset", count=len(budgets))
