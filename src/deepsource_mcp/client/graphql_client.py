"""
DeepSource GraphQL client.

Thin transport over httpx AsyncClient that sends every request through the
RetryExecutor. The executor knows nothing about HTTP or GraphQL; this module
turns transport failures and GraphQL ``errors`` payloads into
ClassifiedErrors so the executor can decide what to retry.

- Queries are idempotent and use the policy of their endpoint
- Mutations and subscriptions run once (``none`` policy) but still go
  through the circuit breaker
"""

import re
from typing import Any, Optional

import httpx
import structlog

from deepsource_mcp.config import Settings
from deepsource_mcp.errors.categories import ErrorCategory
from deepsource_mcp.errors.classification import classify_graphql_message, classify_http_error
from deepsource_mcp.errors.exceptions import create_classified_error
from deepsource_mcp.retry.budget import BudgetStats
from deepsource_mcp.retry.circuit_breaker import CircuitBreakerStats
from deepsource_mcp.retry.executor import RetryExecutor
from deepsource_mcp.retry.models import RetryContext
from deepsource_mcp.retry.policies import NO_RETRY_POLICY, is_idempotent_graphql_operation

logger = structlog.get_logger(__name__)

DEFAULT_ENDPOINT = "graphql"

_OPERATION_RE = re.compile(r"^\s*(query|mutation|subscription)\b", re.IGNORECASE)
_FIRST_FIELD_RE = re.compile(r"{\s*(\w+)")
_OPERATION_NAME_RE = re.compile(r"(?:query|mutation|subscription)\s+(\w+)", re.IGNORECASE)


def detect_operation_type(query: str) -> str:
    """query, mutation or subscription; shorthand ``{ ... }`` is a query."""
    match = _OPERATION_RE.match(query)
    return match.group(1).lower() if match else "query"


def extract_endpoint(query: str) -> str:
    """
    Endpoint key for a GraphQL document.

    First selected field, then the operation name, then ``graphql``.
    """
    field = _FIRST_FIELD_RE.search(query)
    if field:
        return field.group(1)
    name = _OPERATION_NAME_RE.search(query)
    if name:
        return name.group(1)
    return DEFAULT_ENDPOINT


class DeepSourceGraphQLClient:
    """
    Async DeepSource GraphQL client with retries, circuit breaking and retry budgets.

    Usage:
        client = DeepSourceGraphQLClient(settings, RetryExecutor.from_settings(settings))
        data = await client.execute("query { viewer { email } }")
        await client.aclose()
    """

    def __init__(
        self,
        settings: Settings,
        executor: RetryExecutor,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            settings: Provides API URL, API key and timeout
            executor: Shared retry executor (owns breakers and budgets)
            transport: Custom httpx transport (tests pass MockTransport)
        """
        self.executor = executor
        self.api_url = settings.DEEPSOURCE_API_URL
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {settings.DEEPSOURCE_API_KEY}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(settings.DEEPSOURCE_TIMEOUT),
            transport=transport,
        )

        logger.info(
            "DeepSource GraphQL client initialized",
            api_url=self.api_url,
            timeout=settings.DEEPSOURCE_TIMEOUT,
            has_api_key=bool(settings.DEEPSOURCE_API_KEY),
        )

    async def execute(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
        endpoint: Optional[str] = None,
    ) -> Any:
        """
        Execute a GraphQL document and return its ``data``.

        Args:
            query: GraphQL query or mutation
            variables: Operation variables
            endpoint: Endpoint key override (defaults to ``extract_endpoint``)

        Raises:
            ClassifiedError: Last failure once retries are spent or not allowed
            CircuitOpenError: Breaker for the endpoint is open
        """
        operation_type = detect_operation_type(query)
        endpoint = endpoint or extract_endpoint(query)
        idempotent = is_idempotent_graphql_operation(operation_type)

        async def send() -> Any:
            return await self._post(query, variables, endpoint)

        def log_retry(context: RetryContext) -> None:
            logger.info(
                "Retrying GraphQL query",
                attempt=context.attempt_number,
                elapsed_ms=round(context.elapsed_ms, 1),
                last_error=str(context.last_error),
            )

        if not idempotent:
            logger.debug("Executing without retry (not idempotent)", operation_type=operation_type)

        result = await self.executor.execute_with_retry(
            send,
            endpoint=endpoint,
            policy=None if idempotent else NO_RETRY_POLICY,
            on_retry_attempt=log_retry,
        )

        if result.success:
            logger.debug(
                "GraphQL request succeeded",
                endpoint=endpoint,
                attempts=result.attempts,
                total_duration_ms=round(result.total_duration_ms, 1),
            )
            return result.data

        if result.error is not None:
            raise result.error
        raise create_classified_error(
            "GraphQL request failed after retries",
            ErrorCategory.OTHER,
            details={"endpoint": endpoint, "attempts": result.attempts},
        )

    async def _post(self, query: str, variables: Optional[dict[str, Any]], endpoint: str) -> Any:
        try:
            response = await self._client.post(
                self.api_url, json={"query": query, "variables": variables or {}}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise classify_http_error(e) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise create_classified_error(
                "Invalid JSON in DeepSource response",
                ErrorCategory.FORMAT,
                original_error=e,
                details={"endpoint": endpoint, "body": response.text[:500]},
            ) from e

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            message = "; ".join(
                str(error.get("message", error) if isinstance(error, dict) else error)
                for error in errors
            )
            logger.error("GraphQL query returned errors", errors=errors)
            raise create_classified_error(
                f"GraphQL Errors: {message}",
                classify_graphql_message(message),
                details={"endpoint": endpoint, "errors": errors},
            )

        if not isinstance(payload, dict) or "data" not in payload:
            raise create_classified_error(
                "DeepSource response has no data",
                ErrorCategory.FORMAT,
                details={"endpoint": endpoint},
            )
        return payload["data"]

    def circuit_breaker_stats(self) -> dict[str, CircuitBreakerStats]:
        return self.executor.breakers.all_stats()

    def retry_budget_stats(self) -> dict[str, BudgetStats]:
        return self.executor.budgets.all_stats()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
        logger.debug("DeepSource GraphQL client closed")
