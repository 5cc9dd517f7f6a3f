"""
Backoff delay calculation.

Pure helpers for deciding how long to wait before the next retry:
exponential growth with symmetric jitter, Retry-After parsing (seconds or
HTTP-date), and the choice between the two. ``sleep`` is the only function
here that suspends.

All durations are milliseconds.
"""

import asyncio
import random
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Literal, Optional

import structlog

from deepsource_mcp.retry.policies import RetryPolicy

logger = structlog.get_logger(__name__)

DelaySource = Literal["header-seconds", "header-date", "exponential"]

_SECONDS_RE = re.compile(r"^\d+$")
_NEGATIVE_RE = re.compile(r"^-\d+$")


@dataclass(frozen=True)
class RetryAfterInfo:
    """
    A chosen delay and where it came from.

    Attributes:
        delay_ms: Milliseconds to wait (never negative)
        source: header-seconds, header-date or exponential
        original_value: Raw Retry-After header, when the delay came from one
    """

    delay_ms: float
    source: DelaySource
    original_value: Optional[str] = None


def monotonic_ms() -> float:
    """Default clock for the retry core: monotonic milliseconds."""
    return time.monotonic() * 1000


def backoff_delay(attempt: int, policy: RetryPolicy, rng: random.Random | None = None) -> float:
    """
    Exponential delay with symmetric jitter.

    ``base = min(base_delay_ms * 2**attempt, max_delay_ms)``; the result is
    drawn uniformly from ``[base * (1 - jitter), base * (1 + jitter)]`` and
    clamped at zero. With ``jitter_factor == 0`` this is exactly ``base``.

    Args:
        attempt: Zero-based retry number
        policy: Policy providing base/max delay and jitter
        rng: Random source (tests pass a seeded one)
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")

    capped = min(policy.base_delay_ms * 2**attempt, policy.max_delay_ms)
    if policy.jitter_factor == 0:
        return float(capped)

    uniform = (rng or random).uniform(-1.0, 1.0)
    delay = max(0.0, capped + uniform * capped * policy.jitter_factor)

    logger.debug(
        "Calculated backoff delay",
        attempt=attempt,
        capped_delay_ms=capped,
        jitter_factor=policy.jitter_factor,
        delay_ms=round(delay, 1),
    )
    return delay


def parse_retry_after(
    header_value: Optional[str], now: Optional[datetime] = None
) -> Optional[RetryAfterInfo]:
    """
    Parse a Retry-After header.

    Accepts a non-negative integer number of seconds or an HTTP-date. A date
    in the past yields a zero delay. Empty, negative or unparseable values
    return None.

    Args:
        header_value: Raw header value
        now: Reference time for HTTP-dates (defaults to the current UTC time)
    """
    if not header_value:
        return None

    value = header_value.strip()
    if not value:
        return None

    if _SECONDS_RE.match(value):
        return RetryAfterInfo(
            delay_ms=int(value) * 1000,
            source="header-seconds",
            original_value=value,
        )

    if _NEGATIVE_RE.match(value):
        logger.warning("Negative Retry-After value", header=value)
        return None

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        logger.warning("Could not parse Retry-After header", header=value)
        return None
    if retry_at is None:
        logger.warning("Could not parse Retry-After header", header=value)
        return None

    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    delay_ms = max(0.0, (retry_at - now).total_seconds() * 1000)

    logger.debug("Parsed Retry-After as HTTP-date", retry_at=retry_at.isoformat(), delay_ms=delay_ms)
    return RetryAfterInfo(delay_ms=delay_ms, source="header-date", original_value=value)


def retry_delay(
    attempt: int,
    policy: RetryPolicy,
    retry_after: Optional[str] = None,
    rng: random.Random | None = None,
) -> RetryAfterInfo:
    """
    Delay before retry number ``attempt``.

    When the policy respects Retry-After and the header parses, the header
    wins (capped at ``max_delay_ms``); otherwise exponential backoff.
    """
    if policy.respect_retry_after and retry_after:
        parsed = parse_retry_after(retry_after)
        if parsed is not None:
            capped = min(parsed.delay_ms, policy.max_delay_ms)
            if capped != parsed.delay_ms:
                logger.debug(
                    "Capped Retry-After delay to policy maximum",
                    original_ms=parsed.delay_ms,
                    capped_ms=capped,
                )
            return RetryAfterInfo(
                delay_ms=capped,
                source=parsed.source,
                original_value=parsed.original_value,
            )

    return RetryAfterInfo(delay_ms=backoff_delay(attempt, policy, rng), source="exponential")


async def sleep(ms: float) -> None:
    """Suspend for ``ms`` milliseconds; non-positive values return immediately."""
    if ms <= 0:
        return
    await asyncio.sleep(ms / 1000)


def max_total_delay(policy: RetryPolicy) -> float:
    """
    Worst-case total delay a policy can spend sleeping.

    Sum of the capped exponential delays over ``max_attempts`` plus a jitter
    margin of ``max_delay_ms * jitter_factor`` per attempt. Useful to size
    an outer timeout.
    """
    if policy.max_attempts == 0:
        return 0

    total = sum(
        min(policy.base_delay_ms * 2**attempt, policy.max_delay_ms)
        for attempt in range(policy.max_attempts)
    )
    total += policy.max_delay_ms * policy.jitter_factor * policy.max_attempts
    return round(total)


def can_continue_retrying(
    start_ms: float, max_duration_ms: float, now_ms: Optional[float] = None
) -> bool:
    """True while less than ``max_duration_ms`` has passed since ``start_ms``."""
    now_ms = monotonic_ms() if now_ms is None else now_ms
    return now_ms - start_ms < max_duration_ms
