"""Observability - structured logging sinks for HTTP operations."""

from .logging import (
    BoundLogger,
    CapturingRenderer,
    ConsoleRenderer,
    JsonRenderer,
    LogEntry,
    LogRenderer,
    NoOpRenderer,
    StdlibRenderer,
    StructuredLogger,
    configure_from_settings,
    configure_logging,
    get_logger,
    log_context,
    safe_url,
)

__all__ = [
    "StructuredLogger", "BoundLogger", "LogEntry",
    "LogRenderer", "ConsoleRenderer", "JsonRenderer", "StdlibRenderer", "NoOpRenderer", "CapturingRenderer",
    "configure_logging", "configure_from_settings", "get_logger", "log_context", "safe_url",
]
