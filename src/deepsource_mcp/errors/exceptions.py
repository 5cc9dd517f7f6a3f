"""
Classified exceptions for DeepSource API operations.

Every failure that reaches the retry executor should be a ClassifiedError
(or at least expose a ``category`` attribute, see ``Classified``). The
category is what the retry policies look at; the message is only used by
the heuristic fallback for errors nobody classified.
"""

from typing import Any, ClassVar, Optional, Protocol, runtime_checkable

from deepsource_mcp.errors.categories import ErrorCategory


@runtime_checkable
class Classified(Protocol):
    """Anything that carries an ErrorCategory."""

    category: ErrorCategory


class ClassifiedError(Exception):
    """
    Base exception for all categorized DeepSource errors.

    Subclasses pin ``default_category``; the base class can be raised with an
    explicit category when no dedicated subclass fits.

    Attributes:
        message: Human-readable error message
        category: Failure cause used for retry decisions
        details: Structured context (status code, endpoint, GraphQL errors...)
        original_error: Lower-level exception that caused this one
        retry_after: Raw Retry-After header value, if the server sent one
    """

    default_category: ClassVar[ErrorCategory] = ErrorCategory.OTHER

    def __init__(
        self,
        message: str,
        category: Optional[ErrorCategory] = None,
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
        retry_after: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.details = details or {}
        self.original_error = original_error
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class AuthError(ClassifiedError):
    """Invalid, expired or missing API key."""

    default_category = ErrorCategory.AUTH


class NetworkError(ClassifiedError):
    """Unable to reach the DeepSource API (DNS, refused, reset...)."""

    default_category = ErrorCategory.NETWORK


class ServerError(ClassifiedError):
    """DeepSource answered with a 5xx or an internal error."""

    default_category = ErrorCategory.SERVER


class ClientError(ClassifiedError):
    """Request rejected as malformed (4xx other than the special cases)."""

    default_category = ErrorCategory.CLIENT


class RequestTimeoutError(ClassifiedError):
    """Request exceeded its timeout."""

    default_category = ErrorCategory.TIMEOUT


class RateLimitError(ClassifiedError):
    """
    Request was throttled (HTTP 429).

    Usually carries ``retry_after`` so the executor can honor the server's
    hint instead of its own backoff.
    """

    default_category = ErrorCategory.RATE_LIMIT


class SchemaError(ClassifiedError):
    """Query does not match the GraphQL schema."""

    default_category = ErrorCategory.SCHEMA


class NotFoundError(ClassifiedError):
    """Requested project, run or resource does not exist."""

    default_category = ErrorCategory.NOT_FOUND


class FormatError(ClassifiedError):
    """Response could not be decoded."""

    default_category = ErrorCategory.FORMAT


_ERRORS_BY_CATEGORY: dict[ErrorCategory, type[ClassifiedError]] = {
    ErrorCategory.AUTH: AuthError,
    ErrorCategory.NETWORK: NetworkError,
    ErrorCategory.SERVER: ServerError,
    ErrorCategory.CLIENT: ClientError,
    ErrorCategory.TIMEOUT: RequestTimeoutError,
    ErrorCategory.RATE_LIMIT: RateLimitError,
    ErrorCategory.SCHEMA: SchemaError,
    ErrorCategory.NOT_FOUND: NotFoundError,
    ErrorCategory.FORMAT: FormatError,
}


def create_classified_error(
    message: str,
    category: ErrorCategory,
    original_error: Optional[BaseException] = None,
    details: Optional[dict[str, Any]] = None,
    retry_after: Optional[str] = None,
) -> ClassifiedError:
    """Build the most specific ClassifiedError subclass for ``category``."""
    error_cls = _ERRORS_BY_CATEGORY.get(category, ClassifiedError)
    return error_cls(
        message,
        category=category,
        details=details,
        original_error=original_error,
        retry_after=retry_after,
    )
