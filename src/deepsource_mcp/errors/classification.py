"""
Error classification helpers.

The primary contract is the ``category`` carried by a ClassifiedError. The
helpers here turn the other things a transport can throw at us (httpx
exceptions, HTTP status codes, GraphQL error payloads) into categories.

``heuristic_category`` is the last resort for unclassified exceptions: it
substring-matches the message against a handful of keywords. It is lossy
and best-effort; anything it does not recognize is OTHER, which no policy
retries.
"""

from typing import Optional

import httpx

from deepsource_mcp.errors.categories import ErrorCategory
from deepsource_mcp.errors.exceptions import (
    Classified,
    ClassifiedError,
    create_classified_error,
)

# Ordered: the first matching group wins ("etimedout" is a network error)
_HEURISTIC_PATTERNS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.NETWORK, ("network", "econnrefused", "econnreset", "etimedout")),
    (ErrorCategory.RATE_LIMIT, ("rate limit", "429")),
    (ErrorCategory.SERVER, ("500", "502", "503")),
    (ErrorCategory.TIMEOUT, ("timeout",)),
)

_GRAPHQL_PATTERNS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (
        ErrorCategory.AUTH,
        (
            "authentication",
            "unauthorized",
            "access denied",
            "not authorized",
            "forbidden",
            "token",
            "api key",
        ),
    ),
    (ErrorCategory.RATE_LIMIT, ("rate limit", "too many requests", "throttled")),
    (ErrorCategory.NETWORK, ("network", "connection", "econnreset", "econnrefused")),
    (ErrorCategory.TIMEOUT, ("timeout", "timed out", "etimedout")),
    (
        ErrorCategory.SCHEMA,
        ("cannot query field", "unknown argument", "unknown type", "field not defined"),
    ),
    (ErrorCategory.NOT_FOUND, ("not found", "nonetype", "does not exist")),
    (ErrorCategory.SERVER, ("server error", "internal error", "500")),
)


def _match(message: str, table: tuple[tuple[ErrorCategory, tuple[str, ...]], ...]) -> ErrorCategory:
    lowered = message.lower()
    for category, patterns in table:
        if any(pattern in lowered for pattern in patterns):
            return category
    return ErrorCategory.OTHER


def heuristic_category(message: str) -> ErrorCategory:
    """Best-effort category for an unclassified error message."""
    return _match(message, _HEURISTIC_PATTERNS)


def classify_graphql_message(message: str) -> ErrorCategory:
    """Category for the combined message of a GraphQL ``errors`` payload."""
    return _match(message, _GRAPHQL_PATTERNS)


def category_for_status(status_code: int) -> ErrorCategory:
    """
    Map an HTTP status code to a category.

    429 -> RATE_LIMIT, 408 -> TIMEOUT, 5xx -> SERVER, other 4xx -> CLIENT.
    Anything else (including 2xx/3xx) is OTHER.
    """
    if status_code == 429:
        return ErrorCategory.RATE_LIMIT
    if status_code == 408:
        return ErrorCategory.TIMEOUT
    if 500 <= status_code <= 599:
        return ErrorCategory.SERVER
    if 400 <= status_code <= 499:
        return ErrorCategory.CLIENT
    return ErrorCategory.OTHER


def classify_error(error: BaseException) -> ErrorCategory:
    """
    Category of an arbitrary exception.

    Uses the error's own ``category`` when it has a valid one, otherwise
    falls back to ``heuristic_category``.
    """
    if isinstance(error, Classified):
        try:
            return ErrorCategory(error.category)
        except ValueError:
            pass
    return heuristic_category(str(error))


def classify_http_error(error: httpx.HTTPError) -> ClassifiedError:
    """
    Wrap an httpx exception into the matching ClassifiedError.

    401/403 are authentication failures and 404 is NOT_FOUND; other status
    codes go through ``category_for_status``. The Retry-After header of the
    response, if any, is kept on the returned error.
    """
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        if status_code in (401, 403):
            category = ErrorCategory.AUTH
        elif status_code == 404:
            category = ErrorCategory.NOT_FOUND
        else:
            category = category_for_status(status_code)
        return create_classified_error(
            f"DeepSource API returned HTTP {status_code}",
            category,
            original_error=error,
            details={"status_code": status_code},
            retry_after=error.response.headers.get("Retry-After"),
        )

    # TimeoutException is a TransportError, check it first
    if isinstance(error, httpx.TimeoutException):
        return create_classified_error(
            "Timeout error: DeepSource API request timed out",
            ErrorCategory.TIMEOUT,
            original_error=error,
            details={"error_type": type(error).__name__},
        )
    if isinstance(error, httpx.TransportError):
        return create_classified_error(
            f"Connection error: unable to reach DeepSource API ({error})",
            ErrorCategory.NETWORK,
            original_error=error,
            details={"error_type": type(error).__name__},
        )
    return create_classified_error(
        f"Unexpected HTTP error: {error}",
        ErrorCategory.OTHER,
        original_error=error,
        details={"error_type": type(error).__name__},
    )


def retry_after_from_error(error: BaseException) -> Optional[str]:
    """Raw Retry-After value attached to ``error``, if any."""
    retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, str):
        return retry_after
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.headers.get("Retry-After")
    original = getattr(error, "original_error", None)
    if isinstance(original, httpx.HTTPStatusError):
        return original.response.headers.get("Retry-After")
    return None
