"""
Value objects produced by the retry executor.

RetryContext is handed to the optional observer before each retry;
RetryResult is the single terminal outcome of a call.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryContext:
    """
    Snapshot passed to ``on_retry_attempt`` right before a retry.

    Attributes:
        endpoint: Endpoint key of the call
        attempt_number: Zero-based number of the attempt about to run (>= 1)
        elapsed_ms: Time since the call started
        last_error: Failure that caused this retry
        is_last_attempt: Whether no further retry will follow this one
    """

    endpoint: str
    attempt_number: int
    elapsed_ms: float
    last_error: Optional[BaseException]
    is_last_attempt: bool


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    """
    Terminal outcome of ``execute_with_retry``.

    Exactly one of these holds: success, non-retriable failure, attempts
    exhausted, blocked by the circuit breaker, blocked by the retry budget.
    ``data`` is only meaningful when ``success`` is True, ``error`` only
    when it is False.

    Attributes:
        success: Whether the operation eventually returned
        data: Operation result (success only)
        error: Last failure (failure only; None if nothing ran)
        attempts: Number of times the operation was invoked
        total_duration_ms: Wall time of the whole call, sleeps included
        circuit_breaker_blocked: Stopped because the breaker refused
        budget_exhausted: Stopped because the retry budget was spent
    """

    success: bool
    data: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0
    total_duration_ms: float = 0.0
    circuit_breaker_blocked: bool = False
    budget_exhausted: bool = False

    def __post_init__(self) -> None:
        """Validate result invariants."""
        if self.attempts < 0:
            raise ValueError("attempts must be >= 0")

        if self.total_duration_ms < 0:
            raise ValueError("total_duration_ms must be >= 0")

        if self.circuit_breaker_blocked and self.budget_exhausted:
            raise ValueError("a result cannot be both breaker-blocked and budget-exhausted")

        if self.success and (
            self.error is not None or self.circuit_breaker_blocked or self.budget_exhausted
        ):
            raise ValueError("a successful result carries no error and no blocking flag")
