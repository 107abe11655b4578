"""Runtime - Retry execution, cancellation and observability.

Contains: retry, concurrency, observability.
"""

from __future__ import annotations

__all__ = [
    # Retry
    "Backoff", "FixedDelay", "ExponentialBackoff", "JitterBackoff", "RetryStrategy", "make_backoff",
    "RetryPolicy", "NO_RETRY", "RetryTransport", "set_body_factory", "body_factory_of",
    # Concurrency
    "CancelToken", "CANCEL_TOKEN", "cancel_token_of",
    # Observability
    "StructuredLogger", "BoundLogger", "configure_logging", "configure_from_settings", "get_logger", "log_context",
    "safe_url",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("Backoff", "FixedDelay", "ExponentialBackoff", "JitterBackoff", "RetryStrategy", "make_backoff",
                "RetryPolicy", "NO_RETRY", "RetryTransport", "set_body_factory", "body_factory_of"):
        from . import retry
        return getattr(retry, name)

    if name in ("CancelToken", "CANCEL_TOKEN", "cancel_token_of"):
        from . import concurrency
        return getattr(concurrency, name)

    if name in ("StructuredLogger", "BoundLogger", "configure_logging", "configure_from_settings", "get_logger",
                "log_context", "safe_url"):
        from . import observability
        return getattr(observability, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
