"""Tests for backoff strategies and retry policy.

Validates:
- Fixed delay is constant
- Exponential doubling, capping and the base > max first-retry rule
- Jitter range bounds
- Strategy name resolution
"""

from __future__ import annotations

import sys

import pytest

from httpkit.runtime.retry import (
    NO_RETRY,
    ExponentialBackoff,
    FixedDelay,
    JitterBackoff,
    RetryPolicy,
    RetryStrategy,
    make_backoff,
)


# ═════════════════════════════════════════════════════════════════════════════
# Fixed
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("attempt", [0, 1, 5, 100])
def test_fixed_delay_ignores_attempt(attempt: int) -> None:
    """Fixed(d)(attempt) == d for every attempt."""
    assert FixedDelay(0.75).delay(attempt) == 0.75


# ═════════════════════════════════════════════════════════════════════════════
# Exponential
# ═════════════════════════════════════════════════════════════════════════════


def test_exponential_doubles_until_cap() -> None:
    """Delay is min(base * 2^attempt, max)."""
    backoff = ExponentialBackoff(base=0.5, max_delay=10.0)
    assert [backoff.delay(a) for a in range(7)] == [0.5, 1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


def test_exponential_base_above_cap_waits_base_first() -> None:
    """When base > max the first retry waits base, later ones the cap."""
    backoff = ExponentialBackoff(base=5.0, max_delay=2.0)
    assert backoff.delay(0) == 5.0
    assert backoff.delay(1) == 2.0
    assert backoff.delay(4) == 2.0


def test_exponential_overflow_clamps_to_cap() -> None:
    """Huge attempt numbers never overflow past the cap."""
    backoff = ExponentialBackoff(base=0.5, max_delay=10.0)
    assert backoff.delay(5000) == 10.0
    assert backoff.delay(sys.maxsize) == 10.0


def test_exponential_non_positive_clamps_to_cap() -> None:
    """A zero or negative computed delay is treated as exceeding the cap."""
    assert ExponentialBackoff(base=0.0, max_delay=3.0).delay(2) == 3.0
    assert ExponentialBackoff(base=-1.0, max_delay=3.0).delay(0) == 3.0


# ═════════════════════════════════════════════════════════════════════════════
# Jitter
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("attempt", range(8))
def test_jitter_within_half_extra(attempt: int) -> None:
    """Jitter falls in [exp, 1.5 * exp)."""
    exp = ExponentialBackoff(0.5, 10.0).delay(attempt)
    jitter = JitterBackoff(0.5, 10.0)
    for _ in range(50):
        d = jitter.delay(attempt)
        assert exp <= d < 1.5 * exp


def test_jitter_uses_random_source(monkeypatch: pytest.MonkeyPatch) -> None:
    """Extra delay is random() * exp / 2."""
    monkeypatch.setattr("httpkit.runtime.retry.backoff.random.random", lambda: 0.5)
    assert JitterBackoff(1.0, 10.0).delay(1) == pytest.approx(2.5)


def test_strategies_are_frozen_and_hashable() -> None:
    backoff = JitterBackoff(0.5, 10.0)
    with pytest.raises(AttributeError):
        backoff.base = 1.0  # type: ignore[misc]
    assert hash(backoff) == hash(JitterBackoff(0.5, 10.0))


# ═════════════════════════════════════════════════════════════════════════════
# Strategy Names
# ═════════════════════════════════════════════════════════════════════════════


def test_make_backoff_by_name() -> None:
    assert make_backoff("fixed", 0.5, 10.0) == FixedDelay(0.5)
    assert make_backoff(RetryStrategy.JITTER, 0.5, 10.0) == JitterBackoff(0.5, 10.0)
    assert make_backoff("exponential", 1.0, 4.0) == ExponentialBackoff(1.0, 4.0)


def test_make_backoff_rejects_unknown_name() -> None:
    with pytest.raises(ValueError):
        make_backoff("linear", 0.5, 10.0)


def test_strategy_is_valid() -> None:
    assert RetryStrategy.is_valid("jitter")
    assert not RetryStrategy.is_valid("Jitter")
    assert not RetryStrategy.is_valid("")


# ═════════════════════════════════════════════════════════════════════════════
# Policy
# ═════════════════════════════════════════════════════════════════════════════


def test_policy_attempt_accounting() -> None:
    policy = RetryPolicy(max_retries=2, backoff=FixedDelay(0.1))
    assert policy.total_attempts == 3
    assert policy.has_attempts_left(0)
    assert policy.has_attempts_left(1)
    assert not policy.has_attempts_left(2)
    assert policy.get_delay(7) == 0.1


def test_policy_retryable_status_boundary() -> None:
    """Only 500 and above are retryable; 429 is final."""
    assert RetryPolicy.is_retryable_status(500)
    assert RetryPolicy.is_retryable_status(503)
    assert not RetryPolicy.is_retryable_status(499)
    assert not RetryPolicy.is_retryable_status(429)


def test_policy_rejects_negative_retries() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)


def test_no_retry_policy() -> None:
    assert NO_RETRY.is_disabled
    assert NO_RETRY.total_attempts == 1
    assert isinstance(NO_RETRY.backoff, ExponentialBackoff)
