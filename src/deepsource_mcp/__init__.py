"""
Resilience core for the DeepSource MCP server.

Every DeepSource API call made by the MCP tools runs through a single retry
executor that combines:
- Per-endpoint retry policies (aggressive / standard / none)
- Exponential backoff with jitter and Retry-After support
- A per-endpoint circuit breaker
- A per-endpoint retry budget

Architecture: async operation -> RetryExecutor -> RetryResult
"""

__version__ = "0.1.0"
