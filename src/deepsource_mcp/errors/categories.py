"""
Error categories for DeepSource API failures.

Categories partition failures by cause, not by HTTP status. Retry policies
decide retriability per category.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """Closed taxonomy of failure causes."""

    AUTH = "AUTH"
    NETWORK = "NETWORK"
    SERVER = "SERVER"
    CLIENT = "CLIENT"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    SCHEMA = "SCHEMA"
    NOT_FOUND = "NOT_FOUND"
    FORMAT = "FORMAT"
    OTHER = "OTHER"
