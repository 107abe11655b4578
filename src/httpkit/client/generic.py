"""Typed JSON client over a retrying httpx client.

JsonClient sends a request, reads the whole body and validates it into a
declared type with a pydantic TypeAdapter. Status codes of 400 and above
become HttpStatusError carrying the parsed error payload.

Example:
    >>> class User(BaseModel):
    ...     id: int
    ...     name: str
    >>>
    >>> with JsonClient(User) as users:
    ...     resp = users.get("https://api.example.com/users/1")
    ...     resp.data.name
    'Ada'
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, Self, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from httpkit.foundation.errors import ErrorResponse, HttpStatusError, ResponseDecodeError
from httpkit.runtime.observability.logging import safe_url

from .builder import ClientBuilder

if TYPE_CHECKING:
    from types import TracebackType

    from httpkit.runtime.observability import StructuredLogger

T = TypeVar("T")

ERROR_STATUS_THRESHOLD = 400


@dataclass(frozen=True, slots=True)
class Response(Generic[T]):
    """Decoded response.

    Attributes:
        data: Decoded body, or None when the body was empty
        headers: Response headers
        raw_body: Undecoded body bytes
        status_code: HTTP status code
    """

    data: T | None
    headers: httpx.Headers
    raw_body: bytes
    status_code: int


def parse_error_response(status_code: int, body: bytes) -> ErrorResponse:
    """Build the error payload for a failed response.

    A JSON object body fills message/error/details; anything else becomes the
    message verbatim. With neither, the status reason phrase is used.
    """
    fields: dict[str, Any] = {}
    if body:
        try:
            fields = ErrorResponse.model_validate_json(body).model_dump(include={"message", "error", "details"})
        except ValidationError:
            fields = {"message": body.decode(errors="replace")}
    if not fields.get("message") and not fields.get("error"):
        fields["message"] = httpx.codes.get_reason_phrase(status_code)
    return ErrorResponse(status_code=status_code, **fields)


class JsonClient(Generic[T]):
    """HTTP client decoding JSON responses into ``response_type``.

    Args:
        response_type: Any type pydantic can validate (models, dicts, lists...)
        client: Preconfigured client; wins over ``builder``
        builder: ClientBuilder used when no client is given (default: ClientBuilder())
        logger: Optional logger for request/response debug events
    """

    def __init__(
        self,
        response_type: type[T] | Any,
        *,
        client: httpx.Client | None = None,
        builder: ClientBuilder | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.response_type = response_type
        self.logger = logger
        if client is None:
            builder = builder or ClientBuilder()
            if logger is not None and builder.logger is None:
                builder.with_logger(logger)
            client = builder.build()
        self.client = client
        self._adapter: TypeAdapter[T] = TypeAdapter(response_type)

    # ─────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────

    def execute(self, request: httpx.Request) -> Response[T]:
        """Send ``request`` and decode the body.

        Raises:
            HttpStatusError: Status code >= 400
            ResponseDecodeError: Body is not valid for ``response_type``
            httpx.RequestError: Transport failure, including exhausted retries
        """
        self._debug("Executing HTTP request", method=request.method, url=safe_url(request.url))
        resp = self.client.send(request)
        body = resp.content
        self._debug(
            "Received HTTP response",
            method=request.method,
            url=safe_url(request.url),
            status_code=resp.status_code,
            length=len(body),
            content_type=resp.headers.get("content-type", ""),
        )

        if resp.status_code >= ERROR_STATUS_THRESHOLD:
            raise HttpStatusError(parse_error_response(resp.status_code, body))

        data: T | None = None
        if body:
            try:
                data = self._adapter.validate_json(body)
            except ValidationError as exc:
                raise ResponseDecodeError(f"unmarshal response json: {exc}") from exc
        return Response(data=data, headers=resp.headers, raw_body=body, status_code=resp.status_code)

    def do(self, request: httpx.Request) -> Response[T]:
        """Alias of execute()."""
        return self.execute(request)

    def execute_raw(self, request: httpx.Request) -> httpx.Response:
        """Send without reading or decoding; the caller must close the response."""
        return self.client.send(request, stream=True)

    # ─────────────────────────────────────────────────────────────────
    # Shortcuts
    # ─────────────────────────────────────────────────────────────────

    def get(self, url: str) -> Response[T]:
        return self.execute(self.client.build_request("GET", url))

    def delete(self, url: str) -> Response[T]:
        return self.execute(self.client.build_request("DELETE", url))

    def post(self, url: str, content: bytes | str | None = None) -> Response[T]:
        return self.execute(self.client.build_request("POST", url, content=content))

    def put(self, url: str, content: bytes | str | None = None) -> Response[T]:
        return self.execute(self.client.build_request("PUT", url, content=content))

    def patch(self, url: str, content: bytes | str | None = None) -> Response[T]:
        return self.execute(self.client.build_request("PATCH", url, content=content))

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def _debug(self, event: str, **kw: Any) -> None:
        if self.logger is not None:
            self.logger.debug(event, **kw)
