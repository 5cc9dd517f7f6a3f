"""
Unit tests for the DeepSource MCP retry core.

Test individual components in isolation:
- Retry policies and registry (lookup, overrides, custom policies)
- Backoff calculator (exponential delay, jitter, Retry-After)
- Circuit breaker (state machine, sliding window, probes)
- Retry budget (per endpoint and global)
- Retry executor (outcomes, observer, deadline)
- Error classification and the GraphQL client
"""
