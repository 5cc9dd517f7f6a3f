"""
Resilient retry core for DeepSource API calls.

Every outbound call goes through the RetryExecutor, which combines four
pieces of shared, per-endpoint state and logic:

1. **Policies**: how often and how patiently each endpoint is retried
   (aggressive for critical reads, standard by default, none for mutations)
2. **Backoff**: exponential delay with jitter, or the server's Retry-After
3. **Circuit breaker**: stops calling an endpoint that keeps failing
4. **Retry budget**: caps retries per endpoint (and globally) per window

Main Components:
    - RetryExecutor: runs an operation and returns a RetryResult
    - RetryPolicyRegistry / RetryPolicy: endpoint -> policy lookup
    - CircuitBreakerRegistry / CircuitBreaker: endpoint -> breaker
    - RetryBudgetRegistry / RetryBudget: endpoint -> budget

Usage:
    >>> from deepsource_mcp.retry import RetryExecutor
    >>> executor = RetryExecutor.from_settings(settings)
    >>> result = await executor.execute_with_retry(fetch_runs, endpoint="runs")
    >>> if result.success:
    ...     runs = result.data
"""

from deepsource_mcp.retry.backoff import (
    RetryAfterInfo,
    backoff_delay,
    can_continue_retrying,
    max_total_delay,
    parse_retry_after,
    retry_delay,
    sleep,
)
from deepsource_mcp.retry.budget import (
    GLOBAL_BUDGET_KEY,
    BudgetStats,
    RetryBudget,
    RetryBudgetRegistry,
)
from deepsource_mcp.retry.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitBreakerStats,
    CircuitState,
)
from deepsource_mcp.retry.exceptions import CircuitOpenError, RetryExhausted
from deepsource_mcp.retry.executor import RetryExecutor
from deepsource_mcp.retry.models import RetryContext, RetryResult
from deepsource_mcp.retry.policies import (
    AGGRESSIVE_POLICY,
    NO_RETRY_POLICY,
    STANDARD_POLICY,
    RetryPolicy,
    RetryPolicyRegistry,
    create_custom_policy,
    is_idempotent_graphql_operation,
    is_idempotent_http_method,
    is_retriable,
)

__all__ = [
    "RetryExecutor",
    "RetryContext",
    "RetryResult",
    "RetryExhausted",
    "CircuitOpenError",
    "RetryPolicy",
    "RetryPolicyRegistry",
    "AGGRESSIVE_POLICY",
    "STANDARD_POLICY",
    "NO_RETRY_POLICY",
    "create_custom_policy",
    "is_retriable",
    "is_idempotent_http_method",
    "is_idempotent_graphql_operation",
    "RetryAfterInfo",
    "backoff_delay",
    "parse_retry_after",
    "retry_delay",
    "sleep",
    "max_total_delay",
    "can_continue_retrying",
    "CircuitState",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitBreakerStats",
    "RetryBudget",
    "RetryBudgetRegistry",
    "BudgetStats",
    "GLOBAL_BUDGET_KEY",
]
