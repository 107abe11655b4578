"""Foundation - Core building blocks for httpkit.

Contains: error handling, configuration, testing doubles.
"""

from __future__ import annotations

__all__ = [
    # Errors
    "ErrorCode", "classify_exception",
    "TransportRetryError", "RetriesExhaustedError", "BodyReplayError",
    "BodyDrainError", "BodyCloseError", "RequestCancelledError",
    "RequestBuildError", "ResponseDecodeError", "ErrorResponse", "HttpStatusError",
    # Config
    "HttpKitSettings", "HttpSettings", "LoggingSettings", "RetrySettings",
    "get_settings", "clear_settings_cache",
    # Testing
    "ScriptedTransport", "TrackedStream", "Invocation",
]


def __getattr__(name: str):
    """Lazy imports so importing errors never pulls in settings or test doubles."""
    if name in ("ErrorCode", "classify_exception",
                "TransportRetryError", "RetriesExhaustedError", "BodyReplayError",
                "BodyDrainError", "BodyCloseError", "RequestCancelledError",
                "RequestBuildError", "ResponseDecodeError", "ErrorResponse", "HttpStatusError"):
        from . import errors
        return getattr(errors, name)

    if name in ("HttpKitSettings", "HttpSettings", "LoggingSettings", "RetrySettings",
                "get_settings", "clear_settings_cache"):
        from . import config
        return getattr(config, name)

    if name in ("ScriptedTransport", "TrackedStream", "Invocation"):
        from . import testing
        return getattr(testing, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
