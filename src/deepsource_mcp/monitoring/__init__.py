"""Prometheus instrumentation for the retry core."""

from deepsource_mcp.monitoring.metrics import (
    CIRCUIT_STATE_VALUES,
    circuit_breaker_state,
    circuit_breaker_transitions_total,
    retry_calls_total,
    retry_budget_exhausted_total,
    retry_delay_seconds,
)

__all__ = [
    "CIRCUIT_STATE_VALUES",
    "retry_calls_total",
    "retry_delay_seconds",
    "circuit_breaker_state",
    "circuit_breaker_transitions_total",
    "retry_budget_exhausted_total",
]
