"""Client assembly - wire pool limits, timeouts and retries into an httpx client.

ClientBuilder validates every option against fixed bounds. Out-of-range
values fall back to their defaults with a warning on the configured logger
instead of failing, so a bad config value degrades to sane behavior.

Example:
    >>> client = (
    ...     ClientBuilder()
    ...     .with_timeout(10.0)
    ...     .with_max_retries(5)
    ...     .with_retry_strategy(RetryStrategy.JITTER)
    ...     .with_logger(get_logger("orders"))
    ...     .build()
    ... )
    >>> client.get("https://api.example.com/orders")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Self

import httpx

from httpkit.foundation.config import HttpKitSettings, get_settings
from httpkit.foundation.config import settings as cfg
from httpkit.runtime.concurrency import CANCEL_TOKEN, CancelToken, cancel_token_of
from httpkit.runtime.observability.logging import safe_url
from httpkit.runtime.retry import Backoff, ExponentialBackoff, RetryStrategy, RetryTransport, make_backoff

if TYPE_CHECKING:
    from httpkit.runtime.observability import StructuredLogger

_PROXY_SCHEMES = frozenset({"http", "https", "socks5", "socks5h"})


class RetryClient(httpx.Client):
    """httpx.Client whose ``total_timeout`` bounds a request's whole retry sequence.

    Each send attaches a CancelToken deadline to the request; an existing
    token on the request keeps its cancel signal and gets the tighter deadline.
    The deadline lives only for that send: the caller's extensions are
    restored afterwards, so the same request can be sent again.
    """

    def __init__(self, *, total_timeout: float | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.total_timeout = total_timeout

    def send(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        if self.total_timeout is None:
            return super().send(request, **kwargs)

        caller_extensions = request.extensions
        token = cancel_token_of(request)
        request.extensions = {
            **caller_extensions,
            CANCEL_TOKEN: token.bounded(self.total_timeout) if token is not None
            else CancelToken.with_timeout(self.total_timeout),
        }
        try:
            return super().send(request, **kwargs)
        finally:
            request.extensions = caller_extensions


def new_retry_client(
    *,
    max_retries: int = cfg.DEFAULT_MAX_RETRIES,
    backoff: Backoff | None = None,
    transport: httpx.BaseTransport | None = None,
    logger: StructuredLogger | None = None,
) -> RetryClient:
    """Retry-enabled client with no overall timeout and no logging by default.

    Defaults to 3 retries with ExponentialBackoff(0.5, 10.0) over
    httpx.HTTPTransport().
    """
    return RetryClient(
        transport=RetryTransport(
            transport,
            max_retries=max_retries,
            backoff=backoff or ExponentialBackoff(cfg.DEFAULT_BASE_DELAY, cfg.DEFAULT_MAX_DELAY),
            logger=logger,
        ),
        timeout=None,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Builder
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class _Bound:
    label: str
    low: float
    high: float
    default: float


_BOUNDS: dict[str, _Bound] = {
    "max_idle_conns": _Bound("max idle connections", cfg.MIN_IDLE_CONNS, cfg.MAX_IDLE_CONNS, cfg.DEFAULT_MAX_IDLE_CONNS),
    "idle_conn_timeout": _Bound(
        "idle connection timeout", cfg.MIN_IDLE_CONN_TIMEOUT, cfg.MAX_IDLE_CONN_TIMEOUT, cfg.DEFAULT_IDLE_CONN_TIMEOUT,
    ),
    "tls_handshake_timeout": _Bound(
        "TLS handshake timeout",
        cfg.MIN_TLS_HANDSHAKE_TIMEOUT, cfg.MAX_TLS_HANDSHAKE_TIMEOUT, cfg.DEFAULT_TLS_HANDSHAKE_TIMEOUT,
    ),
    "expect_continue_timeout": _Bound(
        "expect continue timeout",
        cfg.MIN_EXPECT_CONTINUE_TIMEOUT, cfg.MAX_EXPECT_CONTINUE_TIMEOUT, cfg.DEFAULT_EXPECT_CONTINUE_TIMEOUT,
    ),
    "max_idle_conns_per_host": _Bound(
        "max idle connections per host",
        cfg.MIN_IDLE_CONNS_PER_HOST, cfg.MAX_IDLE_CONNS_PER_HOST, cfg.DEFAULT_MAX_IDLE_CONNS_PER_HOST,
    ),
    "timeout": _Bound("timeout", cfg.MIN_TIMEOUT, cfg.MAX_TIMEOUT, cfg.DEFAULT_TIMEOUT),
    "max_retries": _Bound("max retries", cfg.MIN_MAX_RETRIES, cfg.MAX_MAX_RETRIES, cfg.DEFAULT_MAX_RETRIES),
    "retry_base_delay": _Bound("retry base delay", cfg.MIN_BASE_DELAY, cfg.MAX_BASE_DELAY, cfg.DEFAULT_BASE_DELAY),
    "retry_max_delay": _Bound("retry max delay", cfg.MIN_MAX_DELAY, cfg.MAX_MAX_DELAY, cfg.DEFAULT_MAX_DELAY),
}


class ClientBuilder:
    """Fluent builder for a retrying, pool-tuned httpx client.

    Every ``with_*`` method returns the builder for chaining. Validation
    happens in ``build()``.
    """

    def __init__(self) -> None:
        self.max_idle_conns: int = cfg.DEFAULT_MAX_IDLE_CONNS
        self.idle_conn_timeout: float = cfg.DEFAULT_IDLE_CONN_TIMEOUT
        self.tls_handshake_timeout: float = cfg.DEFAULT_TLS_HANDSHAKE_TIMEOUT
        self.expect_continue_timeout: float = cfg.DEFAULT_EXPECT_CONTINUE_TIMEOUT
        self.max_idle_conns_per_host: int = cfg.DEFAULT_MAX_IDLE_CONNS_PER_HOST
        self.disable_keep_alive: bool = cfg.DEFAULT_DISABLE_KEEP_ALIVE
        self.timeout: float = cfg.DEFAULT_TIMEOUT
        self.max_retries: int = cfg.DEFAULT_MAX_RETRIES
        self.retry_base_delay: float = cfg.DEFAULT_BASE_DELAY
        self.retry_max_delay: float = cfg.DEFAULT_MAX_DELAY
        self.retry_strategy: RetryStrategy | str = RetryStrategy.EXPONENTIAL
        self.proxy_url: str = ""
        self.logger: StructuredLogger | None = None
        self.transport: httpx.BaseTransport | None = None

    @classmethod
    def from_settings(cls, settings: HttpKitSettings | None = None) -> Self:
        """Seed a builder from environment settings (get_settings() by default)."""
        s = settings or get_settings()
        return (
            cls()
            .with_max_idle_conns(s.http.max_idle_conns)
            .with_max_idle_conns_per_host(s.http.max_idle_conns_per_host)
            .with_idle_conn_timeout(s.http.idle_conn_timeout)
            .with_tls_handshake_timeout(s.http.tls_handshake_timeout)
            .with_expect_continue_timeout(s.http.expect_continue_timeout)
            .with_disable_keep_alive(s.http.disable_keep_alive)
            .with_timeout(s.http.timeout)
            .with_proxy(s.http.proxy_url or "")
            .with_max_retries(s.retry.max_retries)
            .with_retry_base_delay(s.retry.base_delay)
            .with_retry_max_delay(s.retry.max_delay)
            .with_retry_strategy_as_string(s.retry.strategy)
        )

    # ─────────────────────────────────────────────────────────────────
    # Options
    # ─────────────────────────────────────────────────────────────────

    def with_max_idle_conns(self, max_idle_conns: int) -> Self:
        self.max_idle_conns = max_idle_conns
        return self

    def with_idle_conn_timeout(self, seconds: float) -> Self:
        self.idle_conn_timeout = seconds
        return self

    def with_tls_handshake_timeout(self, seconds: float) -> Self:
        self.tls_handshake_timeout = seconds
        return self

    def with_expect_continue_timeout(self, seconds: float) -> Self:
        self.expect_continue_timeout = seconds
        return self

    def with_max_idle_conns_per_host(self, max_idle_conns_per_host: int) -> Self:
        self.max_idle_conns_per_host = max_idle_conns_per_host
        return self

    def with_disable_keep_alive(self, disable_keep_alive: bool) -> Self:
        self.disable_keep_alive = disable_keep_alive
        return self

    def with_timeout(self, seconds: float) -> Self:
        """Overall timeout for one request including all retries and waits."""
        self.timeout = seconds
        return self

    def with_max_retries(self, max_retries: int) -> Self:
        self.max_retries = max_retries
        return self

    def with_retry_base_delay(self, seconds: float) -> Self:
        self.retry_base_delay = seconds
        return self

    def with_retry_max_delay(self, seconds: float) -> Self:
        self.retry_max_delay = seconds
        return self

    def with_retry_strategy(self, strategy: RetryStrategy) -> Self:
        self.retry_strategy = strategy
        return self

    def with_retry_strategy_as_string(self, strategy: str) -> Self:
        """Set the strategy by name; unknown names fall back to exponential."""
        if not RetryStrategy.is_valid(strategy):
            if self.logger is not None:
                self.logger.warning(
                    "Invalid retry strategy type, using default (Exponential)",
                    invalid_value=strategy,
                    default_value=RetryStrategy.EXPONENTIAL.value,
                )
            self.retry_strategy = RetryStrategy.EXPONENTIAL
            return self
        self.retry_strategy = RetryStrategy(strategy)
        return self

    def with_logger(self, logger: StructuredLogger | None) -> Self:
        """Logger for retry events and config warnings (None disables logging)."""
        self.logger = logger
        return self

    def with_proxy(self, proxy_url: str) -> Self:
        """Proxy such as "http://proxy.example.com:8080"; empty string disables."""
        self.proxy_url = proxy_url
        return self

    def with_transport(self, transport: httpx.BaseTransport | None) -> Self:
        """Replace the pooled HTTPTransport the retry layer wraps (pool and proxy options are then unused)."""
        self.transport = transport
        return self

    # ─────────────────────────────────────────────────────────────────
    # Build
    # ─────────────────────────────────────────────────────────────────

    def build(self) -> RetryClient:
        """Validate options and assemble the client.

        Layers, outermost first: RetryClient (overall deadline) ->
        RetryTransport (retries) -> httpx.HTTPTransport (pool, TLS, proxy).
        """
        for name, bound in _BOUNDS.items():
            self._check_bound(name, bound)
        strategy = self._resolve_strategy()

        retry = RetryTransport(
            self.transport if self.transport is not None else self._base_transport(),
            max_retries=self.max_retries,
            backoff=make_backoff(strategy, self.retry_base_delay, self.retry_max_delay),
            logger=self.logger,
        )
        return RetryClient(
            transport=retry,
            timeout=httpx.Timeout(self.timeout, connect=min(self.tls_handshake_timeout, self.timeout)),
            total_timeout=self.timeout,
        )

    def _check_bound(self, name: str, bound: _Bound) -> None:
        value = getattr(self, name)
        if bound.low <= value <= bound.high:
            return
        if self.logger is not None:
            self.logger.warning(
                f"Invalid {bound.label}, using default value",
                invalid_value=value,
                default_value=bound.default,
            )
        setattr(self, name, type(value)(bound.default))

    def _resolve_strategy(self) -> RetryStrategy:
        if RetryStrategy.is_valid(str(self.retry_strategy)):
            return RetryStrategy(self.retry_strategy)
        if self.logger is not None:
            self.logger.warning(
                "No valid retry strategy type set, using default (Exponential)",
                current_type=str(self.retry_strategy),
            )
        self.retry_strategy = RetryStrategy.EXPONENTIAL
        return RetryStrategy.EXPONENTIAL

    def _base_transport(self) -> httpx.HTTPTransport:
        limits = httpx.Limits(
            max_connections=self.max_idle_conns_per_host,
            max_keepalive_connections=0 if self.disable_keep_alive else self.max_idle_conns,
            keepalive_expiry=self.idle_conn_timeout,
        )
        return httpx.HTTPTransport(limits=limits, proxy=self._proxy())

    def _proxy(self) -> str | None:
        if not self.proxy_url:
            return None
        try:
            url = httpx.URL(self.proxy_url)
        except httpx.InvalidURL as exc:
            self._warn_proxy(str(exc))
            return None
        if url.scheme not in _PROXY_SCHEMES or not url.host:
            self._warn_proxy(f"unsupported proxy URL: {safe_url(url)}")
            return None
        return self.proxy_url

    def _warn_proxy(self, error: str) -> None:
        if self.logger is not None:
            self.logger.warning(
                "Failed to parse proxy URL, proceeding without proxy",
                proxy_url=safe_url(self.proxy_url),
                error=error,
            )
