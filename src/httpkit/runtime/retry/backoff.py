"""Backoff strategies for the retrying transport.

Provides pluggable delay calculation for retry attempts:
- FixedDelay: Constant delay
- ExponentialBackoff: Doubling delay with cap
- JitterBackoff: Exponential delay plus up to 50% random extra

All strategies are frozen and stateless, so one instance can be shared by
every request going through a transport.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, runtime_checkable


@runtime_checkable
class Backoff(Protocol):
    """Protocol for backoff delay calculation.

    Attempt numbers are 0-indexed (attempt 0 = delay before the first retry).
    """

    def delay(self, attempt: int) -> float:
        """Calculate delay in seconds for given attempt number.

        Args:
            attempt: 0-indexed retry attempt number

        Returns:
            Delay in seconds before next retry
        """
        ...


@dataclass(frozen=True, slots=True)
class FixedDelay:
    """Fixed delay between retries.

    Attributes:
        delay_seconds: Delay in seconds, regardless of attempt
    """

    delay_seconds: float = 0.5

    def delay(self, attempt: int) -> float:
        return self.delay_seconds


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Exponential backoff with cap.

    Delay = min(base * 2^attempt, max_delay)

    When ``base > max_delay`` the first retry still waits the full ``base``
    and every later retry is capped at ``max_delay``. Overflowing or
    non-positive values are clamped to ``max_delay``.

    Attributes:
        base: Initial delay in seconds (default: 0.5)
        max_delay: Maximum delay cap in seconds (default: 10.0)
    """

    base: float = 0.5
    max_delay: float = 10.0

    def delay(self, attempt: int) -> float:
        if attempt == 0 and self.base > self.max_delay:
            return self.base
        try:
            d = math.ldexp(self.base, attempt)
        except OverflowError:
            return self.max_delay
        if not math.isfinite(d) or d <= 0 or d > self.max_delay:
            return self.max_delay
        return d


@dataclass(frozen=True, slots=True)
class JitterBackoff:
    """Exponential backoff plus random jitter.

    Delay = d + uniform[0, d/2) where d = ExponentialBackoff(base, max_delay)

    Spreads out retries from many clients failing at the same moment.
    Results fall in ``[d, 1.5 * d)``; a zero ``d`` gets no jitter.

    Attributes:
        base: Initial delay in seconds (default: 0.5)
        max_delay: Cap applied before jitter (default: 10.0)
    """

    base: float = 0.5
    max_delay: float = 10.0

    def delay(self, attempt: int) -> float:
        d = ExponentialBackoff(self.base, self.max_delay).delay(attempt)
        if d <= 0:
            return d
        return d + random.random() * (d / 2)


class RetryStrategy(StrEnum):
    """Named backoff strategies, selectable from configuration strings."""

    FIXED = "fixed"
    JITTER = "jitter"
    EXPONENTIAL = "exponential"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls._value2member_map_


def make_backoff(strategy: RetryStrategy | str, base: float, max_delay: float) -> Backoff:
    """Build the backoff for a named strategy; fixed waits ``base`` every time."""
    match RetryStrategy(strategy):
        case RetryStrategy.FIXED:
            return FixedDelay(base)
        case RetryStrategy.JITTER:
            return JitterBackoff(base, max_delay)
        case _:
            return ExponentialBackoff(base, max_delay)
