"""
Retry executor.

Single entry point that runs a fallible async operation under the retry
policy of its endpoint, consulting the circuit breaker and the retry budget
shared by every caller of that endpoint.

Per call:
    1. Resolve the policy (explicit override or registry lookup)
    2. Refuse immediately if the breaker is open
    3. Attempt loop (attempt 0 .. policy.max_attempts):
       - soft deadline check
       - before a retry: breaker and budget checks, then the observer
       - invoke; success returns at once
       - failure: record on the breaker, classify, give up if not retriable
         or out of attempts, charge the budget, sleep, loop
    4. Return a RetryResult describing the single outcome

Usage:
    executor = RetryExecutor.from_settings(settings)
    result = await executor.execute_with_retry(fetch_projects, endpoint="projects")
"""

import functools
import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from deepsource_mcp.config import Settings
from deepsource_mcp.errors.classification import classify_error, retry_after_from_error
from deepsource_mcp.errors.exceptions import Classified
from deepsource_mcp.monitoring.metrics import retry_calls_total, retry_delay_seconds
from deepsource_mcp.retry import backoff
from deepsource_mcp.retry.budget import RetryBudgetRegistry
from deepsource_mcp.retry.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from deepsource_mcp.retry.exceptions import CircuitOpenError, RetryExhausted
from deepsource_mcp.retry.models import RetryContext, RetryResult
from deepsource_mcp.retry.policies import RetryPolicy, RetryPolicyRegistry, is_retriable

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_ENDPOINT = "default"
DEFAULT_MAX_TOTAL_DURATION_MS = 120000

Operation = Callable[[], Awaitable[T]]
RetryObserver = Callable[[RetryContext], Any]
RetryAfterExtractor = Callable[[BaseException], Optional[str]]
SleepFunc = Callable[[float], Awaitable[None]]


class RetryExecutor:
    """
    Runs operations with policy-driven retries.

    The registries are shared state: build one executor (or at least one set
    of registries) per process and inject it wherever DeepSource is called.

    Attributes:
        policies: Endpoint -> RetryPolicy lookup
        breakers: Endpoint -> CircuitBreaker
        budgets: Endpoint -> RetryBudget
        max_total_duration_ms: Default soft deadline per call
    """

    def __init__(
        self,
        policies: Optional[RetryPolicyRegistry] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        budgets: Optional[RetryBudgetRegistry] = None,
        sleep: SleepFunc = backoff.sleep,
        clock: Callable[[], float] = backoff.monotonic_ms,
        max_total_duration_ms: float = DEFAULT_MAX_TOTAL_DURATION_MS,
        metrics_enabled: bool = True,
    ):
        self.policies = policies or RetryPolicyRegistry()
        self.breakers = breakers or CircuitBreakerRegistry(clock=clock, metrics_enabled=metrics_enabled)
        self.budgets = budgets or RetryBudgetRegistry(clock=clock, metrics_enabled=metrics_enabled)
        self.max_total_duration_ms = max_total_duration_ms
        self._sleep = sleep
        self._clock = clock
        self._metrics_enabled = metrics_enabled

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sleep: SleepFunc = backoff.sleep,
        clock: Callable[[], float] = backoff.monotonic_ms,
    ) -> "RetryExecutor":
        """Executor with registries configured from environment settings."""
        executor = cls(
            policies=RetryPolicyRegistry.from_settings(settings),
            breakers=CircuitBreakerRegistry(
                CircuitBreakerConfig.from_settings(settings),
                clock=clock,
                metrics_enabled=settings.PROMETHEUS_ENABLED,
            ),
            budgets=RetryBudgetRegistry.from_settings(settings, clock=clock),
            sleep=sleep,
            clock=clock,
            max_total_duration_ms=settings.RETRY_MAX_TOTAL_DURATION_MS,
            metrics_enabled=settings.PROMETHEUS_ENABLED,
        )
        logger.info(
            "RetryExecutor initialized",
            breaker_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
            breaker_timeout_ms=settings.CIRCUIT_BREAKER_TIMEOUT_MS,
            budget_per_window=settings.RETRY_BUDGET_PER_MINUTE,
            max_total_duration_ms=settings.RETRY_MAX_TOTAL_DURATION_MS,
        )
        return executor

    async def execute_with_retry(
        self,
        operation: Operation[T],
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        policy: Optional[RetryPolicy] = None,
        on_retry_attempt: Optional[RetryObserver] = None,
        max_total_duration_ms: Optional[float] = None,
        extract_retry_after: Optional[RetryAfterExtractor] = retry_after_from_error,
    ) -> RetryResult[T]:
        """
        Run ``operation`` under the retry policy of ``endpoint``.

        Args:
            operation: Zero-argument coroutine function to run
            endpoint: Endpoint key; selects the policy and the shared breaker/budget
            policy: Explicit policy, bypassing the registry lookup
            on_retry_attempt: Observer called (sync or async) before every retry
            max_total_duration_ms: Soft deadline checked before each attempt
            extract_retry_after: Pulls a Retry-After value out of a failure

        Returns:
            RetryResult describing the single outcome of the call. Operation
            failures are reported, never raised.
        """
        with structlog.contextvars.bound_contextvars(endpoint=endpoint):
            return await self._run(
                operation,
                endpoint=endpoint,
                policy=policy or self.policies.policy_for(endpoint),
                on_retry_attempt=on_retry_attempt,
                max_total_duration_ms=(
                    self.max_total_duration_ms
                    if max_total_duration_ms is None
                    else max_total_duration_ms
                ),
                extract_retry_after=extract_retry_after,
            )

    def with_retry(
        self, operation: Callable[..., Awaitable[T]], **options: Any
    ) -> Callable[..., Awaitable[T]]:
        """
        Wrap ``operation`` so it retries and raises instead of returning a RetryResult.

        The wrapper takes the same arguments as ``operation``. On failure it
        raises the last operation error, or RetryExhausted when none was
        recorded.
        """

        @functools.wraps(operation)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            result = await self.execute_with_retry(
                functools.partial(operation, *args, **kwargs), **options
            )
            if result.success:
                return result.data  # type: ignore[return-value]
            if result.error is not None:
                raise result.error
            raise RetryExhausted(
                endpoint=options.get("endpoint", DEFAULT_ENDPOINT),
                attempts=result.attempts,
            )

        return wrapper

    async def _run(
        self,
        operation: Operation[T],
        *,
        endpoint: str,
        policy: RetryPolicy,
        on_retry_attempt: Optional[RetryObserver],
        max_total_duration_ms: float,
        extract_retry_after: Optional[RetryAfterExtractor],
    ) -> RetryResult[T]:
        breaker = self.breakers.get(endpoint)
        start_ms = self._clock()
        last_error: Optional[BaseException] = None
        attempt = 0
        invocations = 0

        logger.debug(
            "Starting retry execution",
            policy=policy.name,
            max_attempts=policy.max_attempts,
        )

        if not breaker.can_attempt():
            state = breaker.state
            logger.warning("Circuit breaker is open, blocking request", state=state.value)
            return self._finish(
                endpoint,
                "circuit_open",
                error=CircuitOpenError(endpoint, state),
                attempts=0,
                start_ms=start_ms,
                circuit_breaker_blocked=True,
            )

        while attempt <= policy.max_attempts:
            elapsed_ms = self._clock() - start_ms
            if elapsed_ms > max_total_duration_ms:
                logger.warning(
                    "Maximum retry duration exceeded",
                    elapsed_ms=elapsed_ms,
                    max_total_duration_ms=max_total_duration_ms,
                    attempts=attempt,
                )
                break

            if attempt > 0:
                if not breaker.can_attempt():
                    logger.warning(
                        "Circuit breaker blocking retry",
                        attempt=attempt,
                        state=breaker.state.value,
                    )
                    return self._finish(
                        endpoint,
                        "circuit_open",
                        error=last_error,
                        attempts=attempt,
                        start_ms=start_ms,
                        circuit_breaker_blocked=True,
                    )

                if not self.budgets.can_retry(endpoint):
                    return self._finish(
                        endpoint,
                        "budget_exhausted",
                        error=last_error,
                        attempts=attempt,
                        start_ms=start_ms,
                        budget_exhausted=True,
                    )

                if on_retry_attempt is not None:
                    await self._notify(
                        on_retry_attempt,
                        RetryContext(
                            endpoint=endpoint,
                            attempt_number=attempt,
                            elapsed_ms=elapsed_ms,
                            last_error=last_error,
                            is_last_attempt=attempt == policy.max_attempts,
                        ),
                    )

            logger.debug("Executing attempt", attempt=attempt, total_attempts=policy.max_attempts + 1)

            invocations += 1
            try:
                data = await operation()
            except Exception as error:
                last_error = error
                breaker.record_failure()
            else:
                breaker.record_success()
                logger.info("Operation succeeded", attempt=attempt)
                return self._finish(
                    endpoint, "success", data=data, attempts=attempt + 1, start_ms=start_ms
                )

            category = classify_error(last_error)
            if not isinstance(last_error, Classified):
                logger.debug(
                    "Classified unlabelled error by message heuristic",
                    error_type=type(last_error).__name__,
                    category=category.value,
                )

            if not is_retriable(category, policy):
                logger.info(
                    "Error is not retriable",
                    attempt=attempt,
                    category=category.value,
                    error_type=type(last_error).__name__,
                )
                return self._finish(
                    endpoint, "non_retriable", error=last_error, attempts=attempt + 1, start_ms=start_ms
                )

            if attempt >= policy.max_attempts:
                break

            if not self.budgets.consume_retry(endpoint):
                return self._finish(
                    endpoint,
                    "budget_exhausted",
                    error=last_error,
                    attempts=attempt + 1,
                    start_ms=start_ms,
                    budget_exhausted=True,
                )

            retry_after = extract_retry_after(last_error) if extract_retry_after else None
            delay = backoff.retry_delay(attempt, policy, retry_after)
            logger.info(
                "Waiting before retry",
                attempt=attempt,
                category=category.value,
                delay_ms=round(delay.delay_ms, 1),
                delay_source=delay.source,
            )
            if self._metrics_enabled:
                retry_delay_seconds.labels(endpoint=endpoint, source=delay.source).observe(
                    delay.delay_ms / 1000
                )

            await self._sleep(delay.delay_ms)
            attempt += 1

        return self._finish(
            endpoint, "exhausted", error=last_error, attempts=invocations, start_ms=start_ms
        )

    @staticmethod
    async def _notify(observer: RetryObserver, context: RetryContext) -> None:
        outcome = observer(context)
        if inspect.isawaitable(outcome):
            await outcome

    def _finish(
        self,
        endpoint: str,
        outcome: str,
        *,
        start_ms: float,
        attempts: int,
        data: Any = None,
        error: Optional[BaseException] = None,
        circuit_breaker_blocked: bool = False,
        budget_exhausted: bool = False,
    ) -> RetryResult[Any]:
        total_duration_ms = max(0.0, self._clock() - start_ms)
        if self._metrics_enabled:
            retry_calls_total.labels(endpoint=endpoint, outcome=outcome).inc()

        if outcome == "exhausted":
            logger.error(
                "All retry attempts failed",
                attempts=attempts,
                total_duration_ms=round(total_duration_ms, 1),
                error_type=type(error).__name__ if error else None,
            )

        return RetryResult(
            success=outcome == "success",
            data=data,
            error=error,
            attempts=attempts,
            total_duration_ms=total_duration_ms,
            circuit_breaker_blocked=circuit_breaker_blocked,
            budget_exhausted=budget_exhausted,
        )
