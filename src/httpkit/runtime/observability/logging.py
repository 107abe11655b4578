"""Structured event logging for the retry transport and clients.

Every component that reports anything takes an optional logger; nothing
writes to a process-wide sink unless asked to. A logger here is any object
with debug/info/warning/error taking an event string plus key/value fields,
so stdlib ``logging`` users can plug in through ``StdlibRenderer``.

Quick Start:
    >>> from httpkit.runtime.observability import configure_logging, get_logger
    >>>
    >>> configure_logging(format="console", level="DEBUG")
    >>> client = ClientBuilder().with_logger(get_logger("payments-api")).build()
    >>> client.get("https://api.example.com/charges")
    # => 10:30:45.123 [warning] HTTP request returned server error, retrying attempt=1 ...

URLs placed in log fields should go through ``safe_url`` so proxy or
basic-auth credentials never reach the output.
"""

from __future__ import annotations

import logging
import sys
import time
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TextIO, runtime_checkable

import httpx
import orjson

from httpkit.foundation.errors import JsonDict, JsonValue

if TYPE_CHECKING:
    from collections.abc import Iterator

    from httpkit.foundation.config import LoggingSettings

_scoped: ContextVar[JsonDict] = ContextVar("httpkit_log_scope", default={})
_active_renderer: ContextVar[LogRenderer | None] = ContextVar("httpkit_log_renderer", default=None)
_active_level: ContextVar[int] = ContextVar("httpkit_log_level", default=logging.INFO)

_TRACEBACK_KEY = "exc_info"


@runtime_checkable
class StructuredLogger(Protocol):
    """What the transport and clients need from a logger."""

    def debug(self, event: str, **kw: JsonValue) -> None: ...
    def info(self, event: str, **kw: JsonValue) -> None: ...
    def warning(self, event: str, **kw: JsonValue) -> None: ...
    def error(self, event: str, **kw: JsonValue) -> None: ...


@dataclass(slots=True)
class LogEntry:
    timestamp: float
    level: str
    event: str
    context: JsonDict

    @property
    def moment(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=UTC)

    @property
    def ts_iso(self) -> str:
        return self.moment.isoformat()

    @property
    def ts_human(self) -> str:
        return self.moment.strftime("%H:%M:%S.%f")[:-3]

    @property
    def fields(self) -> JsonDict:
        """Context without the attached traceback."""
        return {k: v for k, v in self.context.items() if k != _TRACEBACK_KEY}


@runtime_checkable
class LogRenderer(Protocol):
    def render(self, entry: LogEntry) -> None: ...


@dataclass(slots=True, frozen=True)
class BoundLogger:
    """Logger carrying fields that are added to every event it emits.

    ``bind``/``unbind`` return new loggers, so a client can hand a
    request-scoped child to its transport without touching the parent.

    Example:
        >>> log = BoundLogger(context={"service": "billing"})
        >>> log.warning("HTTP request failed, retrying", attempt=1)
        # => 10:30:45.123 [warning] HTTP request failed, retrying attempt=1 service="billing"
    """

    context: JsonDict = field(default_factory=dict)
    _renderer: LogRenderer | None = None
    _level: int = logging.DEBUG

    def bind(self, **kw: JsonValue) -> BoundLogger:
        return replace(self, context={**self.context, **kw})

    def unbind(self, *keys: str) -> BoundLogger:
        return replace(self, context={k: v for k, v in self.context.items() if k not in keys})

    def is_enabled_for(self, level: int) -> bool:
        return level >= self._level

    def debug(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.DEBUG, event, kw)

    def info(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.INFO, event, kw)

    def warning(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.WARNING, event, kw)

    def error(self, event: str, **kw: JsonValue) -> None:
        self._emit(logging.ERROR, event, kw)

    def exception(self, event: str, **kw: JsonValue) -> None:
        """Log at error level with the active traceback attached."""
        self._emit(logging.ERROR, event, {**kw, _TRACEBACK_KEY: traceback.format_exc()})

    def _emit(self, level: int, event: str, fields: JsonDict) -> None:
        if not self.is_enabled_for(level):
            return
        # scope < bound < call site
        entry = LogEntry(time.time(), logging.getLevelName(level).lower(), event,
                         {**_scoped.get(), **self.context, **fields})
        (self._renderer or _current_renderer()).render(entry)


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────

_ANSI = {"reset": "\033[0m", "bold": "\033[1m", "dim": "\033[2m", "red": "\033[31m",
         "green": "\033[32m", "yellow": "\033[33m", "blue": "\033[34m", "cyan": "\033[36m"}
_PLAIN = dict.fromkeys(_ANSI, "")
_LEVEL_STYLE = {"debug": "dim", "info": "green", "warning": "yellow", "error": "red"}


@dataclass(slots=True)
class ConsoleRenderer:
    """One line per event: ``time [level] event key=value ...``.

    Fields are sorted by key; strings are quoted. Colors follow the TTY
    unless forced with ``colors``.
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None
    show_timestamp: bool = True

    def __post_init__(self) -> None:
        if self.colors is None:
            isatty = getattr(self.output, "isatty", None)
            self.colors = bool(isatty and isatty())

    def render(self, entry: LogEntry) -> None:
        pal = _ANSI if self.colors else _PLAIN

        def paint(style: str, text: str) -> str:
            return f"{pal[style]}{text}{pal['reset']}"

        head = [paint("dim", entry.ts_human)] if self.show_timestamp else []
        head += [paint(_LEVEL_STYLE.get(entry.level, "dim"), f"[{entry.level}]"), paint("bold", entry.event)]
        pairs = [f"{paint('cyan', k)}={_console_value(v, paint)}" for k, v in sorted(entry.fields.items())]
        print(" ".join(head + pairs), file=self.output)
        if _TRACEBACK_KEY in entry.context:
            print(paint("red", str(entry.context[_TRACEBACK_KEY])), file=self.output)


def _console_value(value: object, paint) -> str:  # noqa: ANN001
    match value:
        case str():
            return paint("yellow", f'"{value}"')
        case bool():
            return paint("blue", "true" if value else "false")
        case int() | float():
            return paint("blue", str(value))
        case dict() | list() | tuple():
            return paint("dim", orjson.dumps(value, default=str).decode())
        case None:
            return paint("dim", "null")
        case _:
            return repr(value)


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines, one object per event, for log shippers."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        record = {"timestamp": entry.ts_iso, "level": entry.level, "event": entry.event, **entry.context}
        line = orjson.dumps(record, default=str, option=orjson.OPT_NON_STR_KEYS)
        print(line.decode(), file=self.output)


@dataclass(slots=True)
class StdlibRenderer:
    """Forward events to a ``logging.Logger``.

    Fields travel in ``extra={"httpkit": {...}}`` and are appended to the
    message so plain formatters still show them.
    """

    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("httpkit"))

    def render(self, entry: LogEntry) -> None:
        level = logging.getLevelName(entry.level.upper())
        if not isinstance(level, int) or not self.logger.isEnabledFor(level):
            return
        fields = entry.fields
        suffix = " ".join(f"{k}={v!r}" for k, v in sorted(fields.items()))
        message = f"{entry.event} {suffix}" if suffix else entry.event
        if _TRACEBACK_KEY in entry.context:
            message = f"{message}\n{entry.context[_TRACEBACK_KEY]}"
        self.logger.log(level, message, extra={"httpkit": fields})


class NoOpRenderer:
    __slots__ = ()

    def render(self, entry: LogEntry) -> None:
        pass


@dataclass(slots=True)
class CapturingRenderer:
    """Keeps entries in memory for assertions in tests."""

    entries: list[LogEntry] = field(default_factory=list)

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def events(self, level: str | None = None) -> list[str]:
        return [e.event for e in self.entries if level is None or e.level == level]

    def clear(self) -> None:
        self.entries.clear()


# ─────────────────────────────────────────────────────────────────────────────
# Process configuration
# ─────────────────────────────────────────────────────────────────────────────


def configure_logging(
    format: str = "console",  # noqa: A002
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Set the renderer and minimum level that ``get_logger`` loggers use.

    ``format`` is one of "console", "json", "stdlib" or "none". ``output``
    defaults to stderr for console and stdout for json; it is ignored by
    the stdlib bridge, which writes to the "httpkit" logger.
    """
    builders = {
        "console": lambda: ConsoleRenderer(output=output or sys.stderr, colors=colors),
        "json": lambda: JsonRenderer(output=output or sys.stdout),
        "stdlib": StdlibRenderer,
        "none": NoOpRenderer,
    }
    if format not in builders:
        raise ValueError(f"Unknown format: {format}. Use one of: {', '.join(builders)}")

    renderer: LogRenderer = builders[format]()
    _active_level.set(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))
    _active_renderer.set(renderer)
    return renderer


def configure_from_settings(settings: LoggingSettings | None = None) -> LogRenderer:
    """Apply ``HTTPKIT_LOG_*`` settings."""
    if settings is None:
        from httpkit.foundation.config import get_settings
        settings = get_settings().logging
    return configure_logging(settings.format, settings.level)


def get_logger(name: str | None = None, **initial_context: JsonValue) -> BoundLogger:
    """Logger bound to ``initial_context``, plus ``logger=name`` when given."""
    ctx: JsonDict = {**initial_context, "logger": name} if name else dict(initial_context)
    return BoundLogger(context=ctx, _level=_active_level.get())


def _current_renderer() -> LogRenderer:
    renderer = _active_renderer.get()
    if renderer is None:
        renderer = ConsoleRenderer()
        _active_renderer.set(renderer)
    return renderer


@contextmanager
def log_context(**kw: JsonValue) -> Iterator[JsonDict]:
    """Add fields to every event logged inside the block.

    Example:
        >>> with log_context(request_id="abc123"):
        ...     client.get(url)  # retry events include request_id
    """
    token = _scoped.set({**_scoped.get(), **kw})
    try:
        yield _scoped.get()
    finally:
        _scoped.reset(token)


def safe_url(url: httpx.URL | str) -> str:
    """Render a URL for logs with any userinfo masked."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError):
        return str(url)
    if not parsed.userinfo:
        return str(url)
    return str(parsed.copy_with(username="***", password=None))
