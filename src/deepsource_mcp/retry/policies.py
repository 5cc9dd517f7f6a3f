"""
Retry policies per endpoint category.

A policy is an immutable value: how many retries, how long to wait, which
failure categories are worth retrying and whether the server's Retry-After
hint wins over our own backoff.

Policy Table:
    - aggressive: critical reads (5 retries, 1s base, 30s cap)
    - standard: everything else, and the fallback for unknown endpoints
      (3 retries, 1s base, 20s cap)
    - none: mutations; they are not idempotent and are never retried

The registry is a plain lookup table. It is never mutated after
construction; callers that need something different build a one-off policy
with ``create_custom_policy``.
"""

from types import MappingProxyType
from typing import Any, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from deepsource_mcp.config import STANDARD_BASE_DELAY_MS, STANDARD_MAX_DELAY_MS, Settings
from deepsource_mcp.errors.categories import ErrorCategory

logger = structlog.get_logger(__name__)

IDEMPOTENT_HTTP_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})
IDEMPOTENT_GRAPHQL_OPERATIONS = frozenset({"query"})

TRANSIENT_CATEGORIES = frozenset(
    {
        ErrorCategory.NETWORK,
        ErrorCategory.TIMEOUT,
        ErrorCategory.RATE_LIMIT,
        ErrorCategory.SERVER,
    }
)


class RetryPolicy(BaseModel):
    """
    Immutable retry configuration for one endpoint category.

    ``max_attempts`` counts retries, so a call makes at most
    ``max_attempts + 1`` invocations; 0 means "never retry".
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Policy name for logs and metrics")
    max_attempts: int = Field(..., ge=0, description="Maximum number of retries")
    base_delay_ms: int = Field(..., ge=0, description="Backoff delay before the first retry")
    max_delay_ms: int = Field(..., ge=0, description="Upper bound for any single delay")
    jitter_factor: float = Field(default=0.25, ge=0.0, le=1.0, description="Symmetric jitter ratio")
    retriable_categories: frozenset[ErrorCategory] = Field(
        default=TRANSIENT_CATEGORIES,
        description="Failure categories that trigger a retry",
    )
    respect_retry_after: bool = Field(default=True, description="Honor Retry-After hints")

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryPolicy":
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return self


AGGRESSIVE_POLICY = RetryPolicy(
    name="aggressive",
    max_attempts=5,
    base_delay_ms=1000,
    max_delay_ms=30000,
    jitter_factor=0.25,
)

STANDARD_POLICY = RetryPolicy(
    name="standard",
    max_attempts=3,
    base_delay_ms=STANDARD_BASE_DELAY_MS,
    max_delay_ms=STANDARD_MAX_DELAY_MS,
    jitter_factor=0.25,
)

NO_RETRY_POLICY = RetryPolicy(
    name="none",
    max_attempts=0,
    base_delay_ms=0,
    max_delay_ms=0,
    jitter_factor=0.0,
    retriable_categories=frozenset(),
    respect_retry_after=False,
)

DEFAULT_POLICIES: Mapping[str, RetryPolicy] = MappingProxyType(
    {
        AGGRESSIVE_POLICY.name: AGGRESSIVE_POLICY,
        STANDARD_POLICY.name: STANDARD_POLICY,
        NO_RETRY_POLICY.name: NO_RETRY_POLICY,
    }
)

# Endpoint category -> policy name
ENDPOINT_POLICIES: Mapping[str, str] = MappingProxyType(
    {
        "projects": "aggressive",
        "project_issues": "standard",
        "runs": "standard",
        "recent_run_issues": "standard",
        "quality_metrics": "standard",
        "compliance_report": "standard",
        "dependency_vulnerabilities": "standard",
        "update_metric_threshold": "none",
        "update_metric_setting": "none",
    }
)


class RetryPolicyRegistry:
    """
    Read-only lookup from endpoint category to RetryPolicy.

    Attributes:
        policies: Policy name -> policy
        endpoint_policies: Endpoint category -> policy name
    """

    def __init__(
        self,
        policies: Optional[Mapping[str, RetryPolicy]] = None,
        endpoint_policies: Optional[Mapping[str, str]] = None,
    ):
        policies = dict(policies if policies is not None else DEFAULT_POLICIES)
        if STANDARD_POLICY.name not in policies:
            policies[STANDARD_POLICY.name] = STANDARD_POLICY
        endpoint_policies = dict(
            endpoint_policies if endpoint_policies is not None else ENDPOINT_POLICIES
        )

        unknown = sorted(set(endpoint_policies.values()) - set(policies))
        if unknown:
            raise ValueError(f"Endpoints mapped to unknown policies: {', '.join(unknown)}")

        self.policies: Mapping[str, RetryPolicy] = MappingProxyType(policies)
        self.endpoint_policies: Mapping[str, str] = MappingProxyType(endpoint_policies)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicyRegistry":
        """
        Registry whose standard policy honors the RETRY_* environment overrides.

        Only the standard policy (the fallback for unknown endpoints) is
        overridden; the none policy stays at zero retries.
        """
        overrides: dict[str, Any] = {}
        if settings.RETRY_MAX_ATTEMPTS is not None:
            overrides["max_attempts"] = settings.RETRY_MAX_ATTEMPTS
        if settings.RETRY_BASE_DELAY_MS is not None:
            overrides["base_delay_ms"] = settings.RETRY_BASE_DELAY_MS
        if settings.RETRY_MAX_DELAY_MS is not None:
            overrides["max_delay_ms"] = settings.RETRY_MAX_DELAY_MS

        policies = dict(DEFAULT_POLICIES)
        if overrides:
            policies[STANDARD_POLICY.name] = create_custom_policy(
                STANDARD_POLICY, name=STANDARD_POLICY.name, **overrides
            )
            logger.info("Applied retry overrides to standard policy", **overrides)
        return cls(policies=policies)

    def policy_for(self, endpoint_category: str) -> RetryPolicy:
        """Policy for ``endpoint_category``; unknown categories get the standard policy."""
        policy_name = self.endpoint_policies.get(endpoint_category, STANDARD_POLICY.name)
        return self.policies[policy_name]

    def get(self, policy_name: str) -> RetryPolicy:
        """Policy by name (``aggressive``, ``standard``, ``none``...)."""
        try:
            return self.policies[policy_name]
        except KeyError:
            raise KeyError(f"Unknown retry policy: {policy_name}") from None


def create_custom_policy(base: Optional[RetryPolicy] = None, **overrides: Any) -> RetryPolicy:
    """
    Copy of ``base`` (standard by default) with only ``overrides`` replaced.

    The result is named "custom" unless ``name`` is given. Overrides are
    validated the same way as a freshly built policy.
    """
    base = base or STANDARD_POLICY
    overrides.setdefault("name", "custom")
    if "retriable_categories" in overrides:
        overrides["retriable_categories"] = frozenset(overrides["retriable_categories"])
    return RetryPolicy.model_validate({**base.model_dump(), **overrides})


def is_retriable(category: ErrorCategory, policy: RetryPolicy) -> bool:
    """Whether ``policy`` retries failures of ``category``."""
    return category in policy.retriable_categories


def is_idempotent_http_method(method: str) -> bool:
    return method.upper() in IDEMPOTENT_HTTP_METHODS


def is_idempotent_graphql_operation(operation_type: str) -> bool:
    return operation_type.lower() in IDEMPOTENT_GRAPHQL_OPERATIONS
