"""Fluent request builder producing ``httpx.Request`` objects.

Validation problems are collected as the builder is configured and
reported together by ``build()``, so a chain never raises halfway through.

Bodies set through ``with_json_body``, ``with_string_body`` and
``with_bytes_body`` carry a body factory and survive retries; an iterable
passed to ``with_raw_body`` is sent once and a retry that needs it fails
with BodyReplayError.

Example:
    >>> request = (
    ...     RequestBuilder("https://api.example.com")
    ...     .post()
    ...     .with_path("/users")
    ...     .with_bearer_auth(token)
    ...     .with_json_body({"name": "Ada"})
    ...     .build()
    ... )
    >>> client.send(request)
"""

from __future__ import annotations

import base64
from collections.abc import Iterable, Mapping
from typing import Any, Self

import httpx
from pydantic import TypeAdapter

from httpkit.foundation.errors import RequestBuildError
from httpkit.runtime.concurrency import CANCEL_TOKEN, CancelToken
from httpkit.runtime.retry import set_body_factory

VALID_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "TRACE", "CONNECT"})
MAX_USER_AGENT_LENGTH = 500

_JSON = TypeAdapter(Any)
_WHITESPACE = frozenset(" \t\n\r")
_QUERY_KEY_FORBIDDEN = _WHITESPACE | {"=", "&"}

# Sentinel distinguishing "no JSON body" from a JSON null body
_UNSET: Any = object()


def _encode_json(obj: Any) -> bytes:
    return _JSON.dump_json(obj)


class RequestBuilder:
    """Fluent builder for ``httpx.Request`` with accumulated validation errors."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url
        self.reset()

    def reset(self) -> Self:
        """Clear everything except the base URL."""
        self.method = ""
        self.path = ""
        self.query_params: list[tuple[str, str]] = []
        self.headers: dict[str, str] = {}
        self._json: Any = _UNSET
        self._content: bytes | Iterable[bytes] | None = None
        self._cancel_token: CancelToken | None = None
        self._errors: list[str] = []
        return self

    # ─────────────────────────────────────────────────────────────────
    # Method
    # ─────────────────────────────────────────────────────────────────

    def with_method(self, method: str) -> Self:
        """Set the method; trimmed, upper-cased and checked against standard verbs."""
        if not method:
            return self._fail("http method cannot be empty")
        normalized = method.strip().upper()
        if normalized not in VALID_METHODS:
            return self._fail(f"invalid http method: {normalized}")
        self.method = normalized
        return self

    def get(self) -> Self:
        return self._set_method("GET")

    def post(self) -> Self:
        return self._set_method("POST")

    def put(self) -> Self:
        return self._set_method("PUT")

    def delete(self) -> Self:
        return self._set_method("DELETE")

    def patch(self) -> Self:
        return self._set_method("PATCH")

    def head(self) -> Self:
        return self._set_method("HEAD")

    def options(self) -> Self:
        return self._set_method("OPTIONS")

    def trace(self) -> Self:
        return self._set_method("TRACE")

    def connect(self) -> Self:
        return self._set_method("CONNECT")

    # ─────────────────────────────────────────────────────────────────
    # URL
    # ─────────────────────────────────────────────────────────────────

    def with_path(self, path: str) -> Self:
        """Path appended to the base URL path with exactly one slash between."""
        self.path = path
        return self

    def with_query_param(self, key: str, value: str) -> Self:
        if not key:
            return self._fail("query parameter key cannot be empty")
        if not value:
            return self._fail(f"query parameter value for key '{key}' cannot be empty")
        if _QUERY_KEY_FORBIDDEN.intersection(key):
            return self._fail(f"invalid query parameter key format: '{key}' (contains invalid characters)")
        self.query_params.append((key, value))
        return self

    def with_query_params(self, params: Mapping[str, str]) -> Self:
        """Add every pair without per-key validation."""
        self.query_params.extend(params.items())
        return self

    # ─────────────────────────────────────────────────────────────────
    # Headers
    # ─────────────────────────────────────────────────────────────────

    def with_header(self, key: str, value: str) -> Self:
        if not key:
            return self._fail("header key cannot be empty")
        if not value:
            return self._fail(f"header value for key '{key}' cannot be empty")
        if _WHITESPACE.intersection(key):
            return self._fail(f"invalid header key format: '{key}' (contains whitespace)")
        self.headers[key] = value
        return self

    def with_headers(self, headers: Mapping[str, str]) -> Self:
        """Set every header without per-key validation."""
        self.headers.update(headers)
        return self

    def with_basic_auth(self, username: str, password: str) -> Self:
        if not username:
            return self._fail("username for basic auth cannot be empty")
        if not password:
            return self._fail("password for basic auth cannot be empty")
        credentials = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
        self.headers["Authorization"] = f"Basic {credentials}"
        return self

    def with_bearer_auth(self, token: str) -> Self:
        if not token:
            return self._fail("bearer token cannot be empty")
        self.headers["Authorization"] = f"Bearer {token}"
        return self

    def with_user_agent(self, user_agent: str) -> Self:
        if not user_agent:
            return self._fail("user-agent cannot be empty")
        user_agent = user_agent.strip()
        if not user_agent:
            return self._fail("user-agent cannot be empty after trimming whitespace")
        if len(user_agent) > MAX_USER_AGENT_LENGTH:
            return self._fail(
                f"user-agent is too long (max {MAX_USER_AGENT_LENGTH} characters), got {len(user_agent)} characters"
            )
        if {"\r", "\n", "\t"}.intersection(user_agent):
            return self._fail("user-agent cannot contain control characters (\\r, \\n, \\t)")
        self.headers["User-Agent"] = user_agent
        return self

    def with_content_type(self, content_type: str) -> Self:
        return self.with_header("Content-Type", content_type)

    def with_accept(self, accept: str) -> Self:
        return self.with_header("Accept", accept)

    # ─────────────────────────────────────────────────────────────────
    # Body
    # ─────────────────────────────────────────────────────────────────

    def with_json_body(self, body: Any) -> Self:
        """JSON body, re-serialized for every attempt. Pydantic models and datetimes are supported."""
        self._json = body
        self._content = None
        return self.with_content_type("application/json")

    def with_raw_body(self, body: Iterable[bytes]) -> Self:
        """Streamed body sent once; not replayable on retry."""
        self._content = body
        self._json = _UNSET
        return self

    def with_string_body(self, body: str) -> Self:
        return self.with_bytes_body(body.encode())

    def with_bytes_body(self, body: bytes) -> Self:
        self._content = bytes(body)
        self._json = _UNSET
        return self

    def with_cancel_token(self, token: CancelToken | None) -> Self:
        """Cancellation signal checked before each attempt and during backoff."""
        if token is None:
            return self._fail("cancel token cannot be None")
        self._cancel_token = token
        return self

    # ─────────────────────────────────────────────────────────────────
    # Errors & Build
    # ─────────────────────────────────────────────────────────────────

    @property
    def errors(self) -> list[str]:
        return list(self._errors)

    @property
    def has_errors(self) -> bool:
        return bool(self._errors)

    def build(self) -> httpx.Request:
        """Assemble the request.

        Raises:
            RequestBuildError: For accumulated errors, a missing method, an
                invalid base URL or an unserializable JSON body
        """
        if self._errors:
            raise RequestBuildError("request builder errors", self._errors)
        if not self.method:
            raise RequestBuildError("HTTP method must be specified")

        url = self._build_url()
        content, factory = self._build_body()

        extensions: dict[str, Any] = {}
        if self._cancel_token is not None:
            extensions[CANCEL_TOKEN] = self._cancel_token
        request = httpx.Request(
            self.method,
            url,
            headers=self.headers,
            content=content,
            extensions=extensions,
        )
        if factory is not None:
            set_body_factory(request, factory)
        return request

    def _build_url(self) -> httpx.URL:
        try:
            url = httpx.URL(self.base_url)
        except httpx.InvalidURL as exc:
            raise RequestBuildError(f"invalid base URL: {exc}") from exc
        if not url.scheme:
            raise RequestBuildError("base URL must include a scheme (http or https)")
        if not url.host:
            raise RequestBuildError("base URL must include a host")
        if url.scheme not in ("http", "https"):
            raise RequestBuildError(f"unsupported url scheme: {url.scheme} (only http and https are supported)")
        if self.path:
            url = url.copy_with(path=url.path.rstrip("/") + "/" + self.path.lstrip("/"))
        if self.query_params:
            url = url.copy_with(params=httpx.QueryParams([*url.params.multi_items(), *self.query_params]))
        return url

    def _build_body(self) -> tuple[bytes | Iterable[bytes] | None, Any]:
        if self._json is not _UNSET:
            body = self._json
            try:
                content = _encode_json(body)
            except ValueError as exc:
                raise RequestBuildError(f"failed to marshal JSON body: {exc}") from exc
            return content, lambda: _encode_json(body)
        if isinstance(self._content, bytes):
            data = self._content
            return data, lambda: data
        return self._content, None

    def _set_method(self, method: str) -> Self:
        self.method = method
        return self

    def _fail(self, problem: str) -> Self:
        self._errors.append(problem)
        return self
