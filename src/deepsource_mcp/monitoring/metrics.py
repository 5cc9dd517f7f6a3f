"""Custom Prometheus metrics for the retry core.

These metrics are registered on the default prometheus_client registry; the
hosting MCP server decides whether and where to expose them.
Alert rules should be configured for:
- circuit_breaker_state (any endpoint stuck at 2 = open)
- retry_budget_exhausted_total (retry storms against DeepSource)
- retry_calls_total{outcome="exhausted"} (persistent upstream failures)
"""

from prometheus_client import Counter, Gauge, Histogram

# === Retry executor ===

retry_calls_total = Counter(
    "deepsource_retry_calls_total",
    "Executor calls by endpoint and terminal outcome",
    ["endpoint", "outcome"],
)
"""
Terminal outcome of each execute_with_retry call.

Labels:
- endpoint: endpoint category key (projects, runs, ...)
- outcome: success, non_retriable, exhausted, circuit_open, budget_exhausted
"""

retry_delay_seconds = Histogram(
    "deepsource_retry_delay_seconds",
    "Delay slept before a retry",
    ["endpoint", "source"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0],
)
"""
Labels:
- source: exponential, header-seconds, header-date
"""

# === Circuit breaker ===

CIRCUIT_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}

circuit_breaker_state = Gauge(
    "deepsource_circuit_breaker_state",
    "Circuit breaker state per endpoint (0=closed, 1=half_open, 2=open)",
    ["endpoint"],
)

circuit_breaker_transitions_total = Counter(
    "deepsource_circuit_breaker_transitions_total",
    "Circuit breaker state transitions",
    ["endpoint", "from_state", "to_state"],
)

# === Retry budget ===

retry_budget_exhausted_total = Counter(
    "deepsource_retry_budget_exhausted_total",
    "Retries refused because the endpoint (or global) budget was spent",
    ["endpoint"],
)
