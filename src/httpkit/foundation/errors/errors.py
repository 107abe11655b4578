"""Standardized error handling for httpkit.

Provides error codes and a typed exception hierarchy for transport,
request-building and response-decoding failures.

The retry transport raises subclasses of ``httpx.RequestError`` so that code
written against a plain ``httpx.Client`` keeps catching them unchanged.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, ClassVar, Self

import httpx
from pydantic import BaseModel, ConfigDict, Field, computed_field

if TYPE_CHECKING:
    from collections.abc import Sequence


class ErrorCode(StrEnum):
    """Machine-readable error classification.

    Used in retry events and exposed on every httpkit exception.
    """
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    BODY_REPLAY_FAILED = "BODY_REPLAY_FAILED"
    BODY_DRAIN_FAILED = "BODY_DRAIN_FAILED"
    BODY_CLOSE_FAILED = "BODY_CLOSE_FAILED"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    PROTOCOL_ERROR = "PROTOCOL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    HTTP_STATUS = "HTTP_STATUS"
    DECODE_ERROR = "DECODE_ERROR"
    UNKNOWN = "UNKNOWN"


# ─────────────────────────────────────────────────────────────────────────────
# Transport Errors
# ─────────────────────────────────────────────────────────────────────────────


class TransportRetryError(httpx.RequestError):
    """Base class for failures raised by the retrying transport."""

    code: ClassVar[ErrorCode] = ErrorCode.UNKNOWN

    def __init__(self, message: str, *, request: httpx.Request | None = None) -> None:
        super().__init__(message, request=request)


class RetriesExhaustedError(TransportRetryError):
    """Every attempt failed with a retryable outcome.

    Exactly one of ``status_code`` or ``last_error`` is set: the status of
    the final 5xx response, or the transport error of the final attempt.
    The transport error is also chained as ``__cause__``.
    """

    code = ErrorCode.RETRIES_EXHAUSTED

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        status_code: int | None = None,
        last_error: Exception | None = None,
        request: httpx.Request | None = None,
    ) -> None:
        super().__init__(message, request=request)
        self.attempts = attempts
        self.status_code = status_code
        self.last_error = last_error

    @classmethod
    def from_status(cls, status_code: int, attempts: int, request: httpx.Request | None = None) -> Self:
        return cls(
            f"all retry attempts failed: last attempt failed with status {status_code}",
            attempts=attempts,
            status_code=status_code,
            request=request,
        )

    @classmethod
    def from_error(cls, exc: Exception, attempts: int, request: httpx.Request | None = None) -> Self:
        return cls(
            f"all retries failed; last error: {exc}",
            attempts=attempts,
            last_error=exc,
            request=request,
        )


class BodyReplayError(TransportRetryError):
    """A retry needed a fresh request body but none could be produced."""

    code = ErrorCode.BODY_REPLAY_FAILED


class BodyDrainError(TransportRetryError):
    """Reading a discarded response body to the end failed."""

    code = ErrorCode.BODY_DRAIN_FAILED


class BodyCloseError(TransportRetryError):
    """Closing a discarded response body failed after draining it."""

    code = ErrorCode.BODY_CLOSE_FAILED


class RequestCancelledError(TransportRetryError):
    """The request's cancel token fired before or between attempts."""

    code = ErrorCode.CANCELLED


# ─────────────────────────────────────────────────────────────────────────────
# Request / Response Errors
# ─────────────────────────────────────────────────────────────────────────────


class RequestBuildError(ValueError):
    """RequestBuilder could not produce a request."""

    code: ClassVar[ErrorCode] = ErrorCode.INVALID_REQUEST

    def __init__(self, message: str, problems: Sequence[str] = ()) -> None:
        self.problems = list(problems)
        super().__init__(f"{message}: {'; '.join(self.problems)}" if self.problems else message)


class ResponseDecodeError(ValueError):
    """Response body could not be decoded into the requested type."""

    code: ClassVar[ErrorCode] = ErrorCode.DECODE_ERROR


class ErrorResponse(BaseModel):
    """Structured error payload returned by an API for status >= 400.

    Attributes:
        status_code: HTTP status code of the response
        message: Primary error message (``message`` field or raw body)
        error: Alternative ``error`` field some APIs use instead of ``message``
        details: Optional extra detail string
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    status_code: Annotated[int, Field(alias="statusCode", ge=0)] = 0
    message: str = ""
    error: str = ""
    details: str = ""

    @computed_field
    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    def render(self) -> str:
        if self.message:
            return f"http {self.status_code}: {self.message}"
        if self.error:
            return f"http {self.status_code}: {self.error}"
        return f"http {self.status_code}: request failed"

    __str__ = render


class HttpStatusError(Exception):
    """Exception wrapping an ErrorResponse for raising."""

    __slots__ = ("error",)
    code: ClassVar[ErrorCode] = ErrorCode.HTTP_STATUS

    def __init__(self, error: ErrorResponse) -> None:
        self.error = error
        super().__init__(error.render())

    @property
    def status_code(self) -> int:
        return self.error.status_code


# ─────────────────────────────────────────────────────────────────────────────
# Classification
# ─────────────────────────────────────────────────────────────────────────────

# Ordered most-specific first; isinstance walks the list in order
_TYPE_CODES: tuple[tuple[type[BaseException], ErrorCode], ...] = (
    (httpx.TimeoutException, ErrorCode.TIMEOUT),
    (httpx.ProxyError, ErrorCode.NETWORK_ERROR),
    (httpx.NetworkError, ErrorCode.NETWORK_ERROR),
    (httpx.ProtocolError, ErrorCode.PROTOCOL_ERROR),
    (httpx.UnsupportedProtocol, ErrorCode.INVALID_REQUEST),
)


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map an exception to an error code by type."""
    if isinstance(exc, (TransportRetryError, RequestBuildError, ResponseDecodeError, HttpStatusError)):
        return exc.code
    for exc_type, code in _TYPE_CODES:
        if isinstance(exc, exc_type):
            return code
    return ErrorCode.UNKNOWN
