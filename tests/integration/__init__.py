"""
Integration tests for the DeepSource MCP retry core.

Test components together, without external services:
- RetryExecutor built from settings with real registries
- GraphQL client against a scripted server (httpx.MockTransport)
- Circuit breaker and retry budget state shared across calls
"""
