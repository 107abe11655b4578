"""Retry support for httpx transports.

Provides a retrying transport decorator with pluggable backoff strategies.

Example:
    >>> import httpx
    >>> from httpkit.runtime.retry import RetryTransport, JitterBackoff
    >>>
    >>> transport = RetryTransport(
    ...     httpx.HTTPTransport(retries=0),
    ...     max_retries=3,
    ...     backoff=JitterBackoff(base=0.5, max_delay=10.0),
    ... )
    >>> client = httpx.Client(transport=transport)
"""

from .backoff import (
    Backoff,
    ExponentialBackoff,
    FixedDelay,
    JitterBackoff,
    RetryStrategy,
    make_backoff,
)
from .policy import NO_RETRY, SERVER_ERROR_THRESHOLD, RetryPolicy
from .transport import (
    BODY_FACTORY,
    BodyFactory,
    RetryTransport,
    body_factory_of,
    has_body,
    set_body_factory,
)

__all__ = [
    # Backoff strategies
    "Backoff",
    "FixedDelay",
    "ExponentialBackoff",
    "JitterBackoff",
    "RetryStrategy",
    "make_backoff",
    # Policy
    "RetryPolicy",
    "NO_RETRY",
    "SERVER_ERROR_THRESHOLD",
    # Transport
    "RetryTransport",
    "BODY_FACTORY",
    "BodyFactory",
    "body_factory_of",
    "has_body",
    "set_body_factory",
]
