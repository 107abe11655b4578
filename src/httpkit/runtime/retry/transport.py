"""Retrying transport decorator for httpx.

RetryTransport wraps any ``httpx.BaseTransport`` and is itself one, so it can
be dropped into ``httpx.Client(transport=...)`` wherever a plain transport
is used.

Behavior per request:
- Responses below 500 (including 4xx and 429) are returned untouched
- 5xx responses and ``httpx.TransportError`` are retried up to max_retries
- Discarded 5xx bodies are drained and closed so pooled connections are freed
- Request bodies are regenerated before each retry; one-shot bodies abort
- A CancelToken on the request stops the loop before an attempt or mid-wait

Example:
    >>> transport = RetryTransport(max_retries=3, backoff=JitterBackoff(0.5, 10.0))
    >>> with httpx.Client(transport=transport) as client:
    ...     client.get("https://api.example.com/health")
"""

from __future__ import annotations

import contextlib
import time
from typing import TYPE_CHECKING, Callable, Union

import httpx

from httpkit.foundation.errors import (
    BodyCloseError,
    BodyDrainError,
    BodyReplayError,
    RequestCancelledError,
    RetriesExhaustedError,
    classify_exception,
)
from httpkit.runtime.concurrency import CancelToken, cancel_token_of
from httpkit.runtime.observability.logging import safe_url

from .backoff import Backoff, ExponentialBackoff
from .policy import RetryPolicy

if TYPE_CHECKING:
    from httpkit.runtime.observability import StructuredLogger

# request.extensions key for the body regeneration callable
BODY_FACTORY = "httpkit.body_factory"

BodyFactory = Callable[[], Union[bytes, httpx.SyncByteStream]]

_TIMEOUT_KEYS = ("connect", "read", "write", "pool")


def set_body_factory(request: httpx.Request, factory: BodyFactory) -> httpx.Request:
    """Attach a body regeneration callable to ``request``."""
    request.extensions[BODY_FACTORY] = factory
    return request


def body_factory_of(request: httpx.Request) -> BodyFactory | None:
    """Return the request's body regeneration capability, or None.

    An explicit factory wins. Otherwise a body httpx already holds in memory
    is replayable as-is; streaming bodies that were never buffered are not.
    """
    factory = request.extensions.get(BODY_FACTORY)
    if factory is not None:
        return factory
    try:
        content = request.content
    except httpx.RequestNotRead:
        return None
    return lambda: content


def has_body(request: httpx.Request) -> bool:
    headers = request.headers
    if "transfer-encoding" in headers:
        return True
    return headers.get("content-length", "0").strip() not in ("", "0")


class RetryTransport(httpx.BaseTransport):
    """Transport decorator retrying transient failures with backoff.

    Holds no per-request state; safe to share across threads.

    Args:
        transport: Underlying transport (default: httpx.HTTPTransport())
        max_retries: Attempts after the first one
        backoff: Delay strategy (default: ExponentialBackoff(0.5, 10.0))
        logger: Optional structured logger for retry and failure events
        sleep: Blocking sleep used when the request carries no cancel token
    """

    def __init__(
        self,
        transport: httpx.BaseTransport | None = None,
        *,
        max_retries: int = 3,
        backoff: Backoff | None = None,
        logger: StructuredLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.transport = transport if transport is not None else httpx.HTTPTransport()
        self.policy = RetryPolicy(max_retries=max_retries, backoff=backoff or ExponentialBackoff())
        self.logger = logger
        self._sleep = sleep

    @classmethod
    def from_policy(
        cls,
        policy: RetryPolicy,
        transport: httpx.BaseTransport | None = None,
        *,
        logger: StructuredLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> RetryTransport:
        return cls(transport, max_retries=policy.max_retries, backoff=policy.backoff, logger=logger, sleep=sleep)

    @property
    def max_retries(self) -> int:
        return self.policy.max_retries

    # ─────────────────────────────────────────────────────────────────
    # Retry Loop
    # ─────────────────────────────────────────────────────────────────

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        token = cancel_token_of(request)
        policy = self.policy

        for attempt in range(policy.total_attempts):
            if attempt > 0 and has_body(request):
                self._rewind_body(request)

            if token is not None:
                token.raise_if_cancelled(request)
                _clamp_timeout(request, token)

            response: httpx.Response | None = None
            error: httpx.TransportError | None = None
            try:
                response = self.transport.handle_request(request)
            except httpx.TransportError as exc:
                error = exc

            if response is not None:
                if not policy.is_retryable_status(response.status_code):
                    return response
                self._discard(response, request)

            if policy.has_attempts_left(attempt):
                if has_body(request) and body_factory_of(request) is None:
                    raise _not_replayable(request)
                delay = policy.get_delay(attempt)
                self._log_retry(request, attempt, delay, response, error)
                self._wait(delay, token, request)
                continue

            self._log_exhausted(request, policy.total_attempts, response, error)
            if error is not None:
                raise RetriesExhaustedError.from_error(error, policy.total_attempts, request) from error
            if response is not None:
                raise RetriesExhaustedError.from_status(response.status_code, policy.total_attempts, request)

        raise RetriesExhaustedError("all retry attempts failed", attempts=policy.total_attempts, request=request)

    def close(self) -> None:
        self.transport.close()

    # ─────────────────────────────────────────────────────────────────
    # Body & Response Handling
    # ─────────────────────────────────────────────────────────────────

    def _rewind_body(self, request: httpx.Request) -> None:
        """Replace the request body with a fresh copy before a retry."""
        factory = body_factory_of(request)
        if factory is None:
            raise _not_replayable(request)
        try:
            body = factory()
        except Exception as exc:
            raise BodyReplayError(f"failed to get request body for retry: {exc}", request=request) from exc
        request.stream = httpx.ByteStream(body) if isinstance(body, bytes) else body

    def _discard(self, response: httpx.Response, request: httpx.Request) -> None:
        """Drain then close a response that will not reach the caller."""
        try:
            for _ in response.stream:  # type: ignore[union-attr]
                pass
        except Exception as exc:
            # the drain error is what gets reported
            with contextlib.suppress(Exception):
                response.close()
            raise BodyDrainError(f"failed to discard response body: {exc}", request=request) from exc
        try:
            response.close()
        except Exception as exc:
            raise BodyCloseError(f"failed to close response body: {exc}", request=request) from exc

    def _wait(self, delay: float, token: CancelToken | None, request: httpx.Request) -> None:
        if token is None:
            self._sleep(delay)
        elif token.wait(delay):
            raise RequestCancelledError(token.reason or "request cancelled", request=request)

    # ─────────────────────────────────────────────────────────────────
    # Observability
    # ─────────────────────────────────────────────────────────────────

    def _log_retry(
        self,
        request: httpx.Request,
        attempt: int,
        delay: float,
        response: httpx.Response | None,
        error: Exception | None,
    ) -> None:
        if self.logger is None:
            return
        fields = {
            "method": request.method,
            "url": safe_url(request.url),
            "attempt": attempt + 1,
            "max_retries": self.max_retries,
            "delay": delay,
        }
        if error is not None:
            self.logger.warning(
                "HTTP request failed, retrying",
                error=str(error),
                error_code=classify_exception(error).value,
                **fields,
            )
        elif response is not None:
            self.logger.warning(
                "HTTP request returned server error, retrying",
                status_code=response.status_code,
                **fields,
            )

    def _log_exhausted(
        self,
        request: httpx.Request,
        attempts: int,
        response: httpx.Response | None,
        error: Exception | None,
    ) -> None:
        if self.logger is None:
            return
        fields = {"method": request.method, "url": safe_url(request.url), "attempts": attempts}
        if error is not None:
            self.logger.error("All retry attempts failed", error=str(error), **fields)
        elif response is not None:
            self.logger.error("All retry attempts failed", status_code=response.status_code, **fields)


def _not_replayable(request: httpx.Request) -> BodyReplayError:
    return BodyReplayError("failed to get request body for retry: body is not replayable", request=request)


def _clamp_timeout(request: httpx.Request, token: CancelToken) -> None:
    """Cap the per-attempt httpx timeouts at the time left on the token."""
    remaining = token.remaining()
    if remaining is None:
        return
    current = request.extensions.get("timeout") or {}
    request.extensions["timeout"] = {
        key: remaining if current.get(key) is None else min(current[key], remaining)
        for key in _TIMEOUT_KEYS
    }
