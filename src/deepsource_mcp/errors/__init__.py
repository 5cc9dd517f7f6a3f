"""
Error taxonomy for DeepSource API operations.

Main Components:
    - ErrorCategory: closed set of failure causes
    - ClassifiedError (+ one subclass per category): exceptions carrying a category
    - classify_error / classify_http_error: turn raw failures into categories
"""

from deepsource_mcp.errors.categories import ErrorCategory
from deepsource_mcp.errors.classification import (
    category_for_status,
    classify_error,
    classify_graphql_message,
    classify_http_error,
    heuristic_category,
    retry_after_from_error,
)
from deepsource_mcp.errors.exceptions import (
    AuthError,
    Classified,
    ClassifiedError,
    ClientError,
    FormatError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    SchemaError,
    ServerError,
    create_classified_error,
)

__all__ = [
    "ErrorCategory",
    "Classified",
    "ClassifiedError",
    "AuthError",
    "NetworkError",
    "ServerError",
    "ClientError",
    "RequestTimeoutError",
    "RateLimitError",
    "SchemaError",
    "NotFoundError",
    "FormatError",
    "create_classified_error",
    "category_for_status",
    "classify_error",
    "classify_graphql_message",
    "classify_http_error",
    "heuristic_category",
    "retry_after_from_error",
]
