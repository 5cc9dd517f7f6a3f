"""
Unit tests for backoff delay calculation and Retry-After parsing.
"""

import random
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from unittest.mock import AsyncMock, patch

import pytest

from deepsource_mcp.retry.backoff import (
    backoff_delay,
    can_continue_retrying,
    max_total_delay,
    parse_retry_after,
    retry_delay,
    sleep,
)
from deepsource_mcp.retry.policies import STANDARD_POLICY, create_custom_policy

NO_JITTER = create_custom_policy(jitter_factor=0.0)
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Exponential Backoff
# ============================================================================


@pytest.mark.parametrize(
    "attempt, expected",
    [(0, 1000), (1, 2000), (2, 4000), (3, 8000), (4, 16000), (5, 20000), (10, 20000)],
)
def test_backoff_without_jitter_is_exact(attempt, expected):
    """Test delay doubles per attempt and is capped at max_delay_ms."""
    assert backoff_delay(attempt, NO_JITTER) == expected


def test_backoff_jitter_stays_within_bounds():
    """Test jittered delays stay within base * (1 +/- jitter)."""
    rng = random.Random(42)
    for attempt in range(8):
        capped = min(1000 * 2**attempt, 20000)
        for _ in range(50):
            delay = backoff_delay(attempt, STANDARD_POLICY, rng)
            assert capped * 0.75 <= delay <= capped * 1.25


def test_backoff_jitter_is_deterministic_with_seeded_rng():
    first = [backoff_delay(2, STANDARD_POLICY, random.Random(7)) for _ in range(3)]
    second = [backoff_delay(2, STANDARD_POLICY, random.Random(7)) for _ in range(3)]

    assert first == second


def test_backoff_jitter_spreads_values():
    rng = random.Random(1234)

    samples = {backoff_delay(1, STANDARD_POLICY, rng) for _ in range(1000)}

    assert len(samples) > 50


def test_backoff_never_negative_with_full_jitter():
    policy = create_custom_policy(jitter_factor=1.0)
    rng = random.Random(0)

    assert all(backoff_delay(0, policy, rng) >= 0 for _ in range(100))


def test_backoff_rejects_negative_attempt():
    with pytest.raises(ValueError):
        backoff_delay(-1, STANDARD_POLICY)


# ============================================================================
# Retry-After Parsing
# ============================================================================


def test_parse_retry_after_seconds():
    info = parse_retry_after("5")

    assert info.delay_ms == 5000
    assert info.source == "header-seconds"
    assert info.original_value == "5"


def test_parse_retry_after_large_seconds():
    assert parse_retry_after("120").delay_ms == 120000


def test_parse_retry_after_zero_seconds():
    assert parse_retry_after("0").delay_ms == 0


def test_parse_retry_after_http_date_in_future():
    header = format_datetime(NOW + timedelta(seconds=10), usegmt=True)

    info = parse_retry_after(header, now=NOW)

    assert info.source == "header-date"
    assert info.delay_ms == pytest.approx(10000)
    assert info.original_value == header


def test_parse_retry_after_http_date_in_past_is_zero():
    header = format_datetime(NOW - timedelta(minutes=5), usegmt=True)

    info = parse_retry_after(header, now=NOW)

    assert info.delay_ms == 0
    assert info.source == "header-date"


@pytest.mark.parametrize("value", [None, "", "   ", "-5", "soon", "12abc"])
def test_parse_retry_after_invalid_values(value):
    """Test empty, negative and garbage headers are ignored."""
    assert parse_retry_after(value) is None


# ============================================================================
# Delay Selection
# ============================================================================


def test_retry_delay_prefers_header():
    info = retry_delay(0, NO_JITTER, retry_after="3")

    assert info.delay_ms == 3000
    assert info.source == "header-seconds"


def test_retry_delay_caps_header_at_max_delay():
    info = retry_delay(0, NO_JITTER, retry_after="120")

    assert info.delay_ms == NO_JITTER.max_delay_ms
    assert info.source == "header-seconds"
    assert info.original_value == "120"


def test_retry_delay_falls_back_to_exponential():
    info = retry_delay(2, NO_JITTER, retry_after="not-a-date")

    assert info.delay_ms == 4000
    assert info.source == "exponential"
    assert info.original_value is None


def test_retry_delay_ignores_header_when_policy_disallows():
    policy = create_custom_policy(NO_JITTER, respect_retry_after=False)

    info = retry_delay(1, policy, retry_after="10")

    assert info.delay_ms == 2000
    assert info.source == "exponential"


# ============================================================================
# Helpers
# ============================================================================


@pytest.mark.asyncio
async def test_sleep_skips_non_positive_delays():
    with patch("deepsource_mcp.retry.backoff.asyncio.sleep", new=AsyncMock()) as mock_sleep:
        await sleep(0)
        await sleep(-10)
        mock_sleep.assert_not_called()

        await sleep(250)
        mock_sleep.assert_awaited_once_with(0.25)


def test_max_total_delay():
    """Test worst case = capped delays + jitter margin per attempt."""
    # 1000 + 2000 + 4000 + 3 * 20000 * 0.25
    assert max_total_delay(STANDARD_POLICY) == 22000
    assert max_total_delay(create_custom_policy(max_attempts=0)) == 0


def test_can_continue_retrying():
    assert can_continue_retrying(start_ms=0, max_duration_ms=1000, now_ms=999)
    assert not can_continue_retrying(start_ms=0, max_duration_ms=1000, now_ms=1000)
