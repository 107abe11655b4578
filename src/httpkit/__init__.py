"""httpkit - Retrying transports and typed JSON clients for httpx.

Wraps any httpx transport in a retry loop with pluggable backoff, replays
request bodies safely, releases discarded connections and honors
cancellation. A fluent builder assembles pooled, bounds-checked clients.

Quick Start (Builder - Recommended):
    >>> from httpkit import ClientBuilder, RetryStrategy, get_logger
    >>>
    >>> client = (
    ...     ClientBuilder()
    ...     .with_timeout(10)
    ...     .with_max_retries(5)
    ...     .with_retry_strategy(RetryStrategy.JITTER)
    ...     .with_logger(get_logger("billing"))
    ...     .build()
    ... )
    >>> client.get("https://api.example.com/invoices")

Transport Only (Bring Your Own Client):
    >>> import httpx
    >>> from httpkit import RetryTransport, ExponentialBackoff
    >>>
    >>> transport = RetryTransport(max_retries=3, backoff=ExponentialBackoff(0.5, 10.0))
    >>> client = httpx.Client(transport=transport)

Typed Requests:
    >>> from httpkit import JsonClient, RequestBuilder
    >>>
    >>> request = (
    ...     RequestBuilder("https://api.example.com")
    ...     .post()
    ...     .with_path("users")
    ...     .with_json_body({"name": "Ada"})
    ...     .build()
    ... )
    >>> with JsonClient(User) as users:
    ...     users.execute(request).data

Cancellation:
    >>> from httpkit import CancelToken
    >>> token = CancelToken()
    >>> request = RequestBuilder(url).get().with_cancel_token(token).build()
    >>> # token.cancel() from another thread stops retries mid-backoff
"""

from __future__ import annotations

__version__ = "0.1.0"

# Errors
from .foundation.errors import (
    BodyCloseError,
    BodyDrainError,
    BodyReplayError,
    ErrorCode,
    ErrorResponse,
    HttpStatusError,
    RequestBuildError,
    RequestCancelledError,
    ResponseDecodeError,
    RetriesExhaustedError,
    TransportRetryError,
    classify_exception,
)

# Config
from .foundation.config import HttpKitSettings, clear_settings_cache, get_settings

# Retry
from .runtime.retry import (
    NO_RETRY,
    Backoff,
    ExponentialBackoff,
    FixedDelay,
    JitterBackoff,
    RetryPolicy,
    RetryStrategy,
    RetryTransport,
    make_backoff,
    set_body_factory,
)

# Cancellation
from .runtime.concurrency import CANCEL_TOKEN, CancelToken

# Observability
from .runtime.observability import (
    BoundLogger,
    StructuredLogger,
    configure_from_settings,
    configure_logging,
    get_logger,
    log_context,
)

# Clients
from .client import ClientBuilder, JsonClient, RequestBuilder, Response, RetryClient, new_retry_client

__all__ = [
    "__version__",
    # Errors
    "ErrorCode", "classify_exception",
    "TransportRetryError", "RetriesExhaustedError", "BodyReplayError",
    "BodyDrainError", "BodyCloseError", "RequestCancelledError",
    "RequestBuildError", "ResponseDecodeError", "ErrorResponse", "HttpStatusError",
    # Config
    "HttpKitSettings", "get_settings", "clear_settings_cache",
    # Retry
    "Backoff", "FixedDelay", "ExponentialBackoff", "JitterBackoff", "RetryStrategy", "make_backoff",
    "RetryPolicy", "NO_RETRY", "RetryTransport", "set_body_factory",
    # Cancellation
    "CancelToken", "CANCEL_TOKEN",
    # Observability
    "StructuredLogger", "BoundLogger", "configure_logging", "configure_from_settings", "get_logger", "log_context",
    # Clients
    "ClientBuilder", "RetryClient", "new_retry_client", "RequestBuilder", "JsonClient", "Response",
]
