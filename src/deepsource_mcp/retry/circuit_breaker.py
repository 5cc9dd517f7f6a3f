"""
Circuit breaker per endpoint.

State machine:
    CLOSED --(failure_threshold failures within failure_window)--> OPEN
    OPEN --(recovery_timeout elapsed, checked lazily)--> HALF_OPEN
    HALF_OPEN --(success_threshold consecutive successes)--> CLOSED
    HALF_OPEN --(any failure)--> OPEN

Failures are counted in a sliding time window rather than per attempt, so
an occasional error never trips the breaker while a burst does. In
HALF_OPEN only ``half_open_max_attempts`` probes are let through.

Breakers are shared by every caller of an endpoint, so all state changes
happen under a lock. Nothing awaits while the lock is held.
"""

import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from deepsource_mcp.monitoring.metrics import (
    CIRCUIT_STATE_VALUES,
    circuit_breaker_state,
    circuit_breaker_transitions_total,
)
from deepsource_mcp.retry.backoff import monotonic_ms

if TYPE_CHECKING:
    from deepsource_mcp.config import Settings

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerConfig(BaseModel):
    """Thresholds and timings for one breaker."""

    model_config = ConfigDict(frozen=True)

    failure_threshold: int = Field(default=5, ge=1, description="Failures in window that open the circuit")
    failure_window_ms: int = Field(default=60000, ge=1, description="Sliding window for counting failures")
    recovery_timeout_ms: int = Field(default=30000, ge=0, description="Time spent OPEN before probing")
    success_threshold: int = Field(default=3, ge=1, description="HALF_OPEN successes needed to close")
    half_open_max_attempts: int = Field(default=5, ge=0, description="Probes allowed while HALF_OPEN")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "CircuitBreakerConfig":
        return cls(
            failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
            failure_window_ms=settings.CIRCUIT_BREAKER_FAILURE_WINDOW_MS,
            recovery_timeout_ms=settings.CIRCUIT_BREAKER_TIMEOUT_MS,
            success_threshold=settings.CIRCUIT_BREAKER_SUCCESS_THRESHOLD,
            half_open_max_attempts=settings.CIRCUIT_BREAKER_HALF_OPEN_MAX_ATTEMPTS,
        )


@dataclass(frozen=True)
class CircuitBreakerStats:
    """Point-in-time snapshot of a breaker."""

    state: CircuitState
    failure_count: int
    consecutive_failures: int
    consecutive_successes: int
    half_open_probes_issued: int
    total_requests: int
    total_successes: int
    total_failures: int
    success_rate: float
    last_state_change_at: float


class CircuitBreaker:
    """
    Three-state breaker guarding a single endpoint.

    Attributes:
        name: Endpoint key (for logs and metrics)
        config: Thresholds and timings
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Clock = monotonic_ms,
        metrics_enabled: bool = True,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._metrics_enabled = metrics_enabled
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._failure_timestamps: deque[float] = deque()
        self._consecutive_successes = 0
        self._consecutive_failures = 0
        self._half_open_probes_issued = 0
        self._last_state_change_at = clock()
        self._total_requests = 0
        self._total_successes = 0
        self._total_failures = 0

        self._publish_state()
        logger.debug("Circuit breaker created", breaker=name, config=self.config.model_dump())

    @property
    def state(self) -> CircuitState:
        """Current state, after the lazy OPEN -> HALF_OPEN check."""
        with self._lock:
            self._refresh_state()
            return self._state

    def get_state(self) -> CircuitState:
        return self.state

    def can_attempt(self) -> bool:
        """
        Whether a request may be sent now.

        CLOSED always allows. OPEN refuses until the recovery timeout has
        passed, at which point the breaker moves to HALF_OPEN. HALF_OPEN
        allows up to ``half_open_max_attempts`` probes; each allowed call
        uses one.
        """
        with self._lock:
            self._refresh_state()

            if self._state is CircuitState.CLOSED:
                return True

            if self._state is CircuitState.OPEN:
                logger.debug(
                    "Circuit breaker is open, rejecting request",
                    breaker=self.name,
                    open_for_ms=self._clock() - self._last_state_change_at,
                    recovery_timeout_ms=self.config.recovery_timeout_ms,
                )
                return False

            if self._half_open_probes_issued < self.config.half_open_max_attempts:
                self._half_open_probes_issued += 1
                return True

            logger.debug(
                "Circuit breaker half-open probe limit reached",
                breaker=self.name,
                probes=self._half_open_probes_issued,
                max_probes=self.config.half_open_max_attempts,
            )
            return False

    def record_success(self) -> None:
        """Count a successful call; enough of them while HALF_OPEN close the circuit."""
        with self._lock:
            self._refresh_state()
            self._total_requests += 1
            self._total_successes += 1
            self._consecutive_failures = 0
            self._consecutive_successes += 1

            if self._state is CircuitState.HALF_OPEN:
                if self._consecutive_successes >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
            elif self._state is CircuitState.OPEN:
                logger.warning("Success recorded while circuit is open", breaker=self.name)

    def record_failure(self) -> None:
        """Count a failed call; may open the circuit."""
        with self._lock:
            now = self._clock()
            self._refresh_state()
            self._total_requests += 1
            self._total_failures += 1
            self._consecutive_successes = 0
            self._consecutive_failures += 1
            self._failure_timestamps.append(now)
            self._prune(now)

            if self._state is CircuitState.CLOSED:
                if len(self._failure_timestamps) >= self.config.failure_threshold:
                    self._transition_to(CircuitState.OPEN)
            elif self._state is CircuitState.HALF_OPEN:
                logger.debug("Failure in half-open state, reopening circuit", breaker=self.name)
                self._transition_to(CircuitState.OPEN)

    def get_stats(self) -> CircuitBreakerStats:
        with self._lock:
            self._refresh_state()
            self._prune(self._clock())
            finished = self._total_successes + self._total_failures
            success_rate = (self._total_successes / finished * 100) if finished else 0.0
            return CircuitBreakerStats(
                state=self._state,
                failure_count=len(self._failure_timestamps),
                consecutive_failures=self._consecutive_failures,
                consecutive_successes=self._consecutive_successes,
                half_open_probes_issued=self._half_open_probes_issued,
                total_requests=self._total_requests,
                total_successes=self._total_successes,
                total_failures=self._total_failures,
                success_rate=round(success_rate, 2),
                last_state_change_at=self._last_state_change_at,
            )

    def reset(self) -> None:
        """Force CLOSED and clear every counter."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_timestamps.clear()
            self._consecutive_successes = 0
            self._consecutive_failures = 0
            self._half_open_probes_issued = 0
            self._total_requests = 0
            self._total_successes = 0
            self._total_failures = 0
            self._last_state_change_at = self._clock()
            self._publish_state()
        logger.info("Circuit breaker reset", breaker=self.name)

    # Callers below must hold self._lock

    def _refresh_state(self) -> None:
        if self._state is CircuitState.OPEN:
            if self._clock() - self._last_state_change_at >= self.config.recovery_timeout_ms:
                self._transition_to(CircuitState.HALF_OPEN)

    def _prune(self, now: float) -> None:
        cutoff = now - self.config.failure_window_ms
        while self._failure_timestamps and self._failure_timestamps[0] <= cutoff:
            self._failure_timestamps.popleft()

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._last_state_change_at = self._clock()

        if new_state is CircuitState.HALF_OPEN:
            self._half_open_probes_issued = 0
            self._consecutive_successes = 0
        elif new_state is CircuitState.CLOSED:
            self._failure_timestamps.clear()
            self._half_open_probes_issued = 0

        if self._metrics_enabled:
            circuit_breaker_transitions_total.labels(
                endpoint=self.name, from_state=old_state.value, to_state=new_state.value
            ).inc()
        self._publish_state()

        log = logger.warning if new_state is CircuitState.OPEN else logger.info
        log(
            "Circuit breaker state transition",
            breaker=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
            recent_failures=len(self._failure_timestamps),
        )

    def _publish_state(self) -> None:
        if self._metrics_enabled:
            circuit_breaker_state.labels(endpoint=self.name).set(CIRCUIT_STATE_VALUES[self._state.value])


class CircuitBreakerRegistry:
    """
    Endpoint key -> CircuitBreaker, created lazily on first use.

    Built once at process start and injected into the executor.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Clock = monotonic_ms,
        metrics_enabled: bool = True,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._metrics_enabled = metrics_enabled
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, endpoint: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        """Breaker for ``endpoint``; ``config`` only applies when it is created."""
        with self._lock:
            breaker = self._breakers.get(endpoint)
            if breaker is None:
                breaker = CircuitBreaker(
                    endpoint,
                    config or self.config,
                    clock=self._clock,
                    metrics_enabled=self._metrics_enabled,
                )
                self._breakers[endpoint] = breaker
            return breaker

    def all_stats(self) -> dict[str, CircuitBreakerStats]:
        with self._lock:
            breakers = list(self._breakers.items())
        return {endpoint: breaker.get_stats() for endpoint, breaker in breakers}

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()
        logger.info("All circuit breakers reset", count=len(breakers))

    def clear(self) -> None:
        """Forget every breaker (they are recreated CLOSED on next use)."""
        with self._lock:
            self._breakers.clear()
