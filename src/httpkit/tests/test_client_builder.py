"""Tests for ClientBuilder, RetryClient and new_retry_client."""

from __future__ import annotations

import time
from typing import Any

import httpx
import pytest

from httpkit.client import ClientBuilder, RetryClient, new_retry_client
from httpkit.foundation.config import HttpKitSettings, HttpSettings, RetrySettings
from httpkit.foundation.testing import ScriptedTransport
from httpkit.runtime.concurrency import CANCEL_TOKEN, CancelToken
from httpkit.runtime.observability import BoundLogger, CapturingRenderer
from httpkit.runtime.retry import ExponentialBackoff, FixedDelay, JitterBackoff, RetryStrategy, RetryTransport

URL = "https://api.example.com/v1/ping"


@pytest.fixture
def renderer() -> CapturingRenderer:
    return CapturingRenderer()


@pytest.fixture
def logger(renderer: CapturingRenderer) -> BoundLogger:
    return BoundLogger(_renderer=renderer)


class RecordingHTTPTransport(httpx.BaseTransport):
    """Stands in for httpx.HTTPTransport and keeps its constructor arguments."""

    created: list[dict[str, Any]] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        RecordingHTTPTransport.created.append(kwargs)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200)


@pytest.fixture
def recorded(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    RecordingHTTPTransport.created = []
    monkeypatch.setattr("httpkit.client.builder.httpx.HTTPTransport", RecordingHTTPTransport)
    return RecordingHTTPTransport.created


def _retry_transport(client: httpx.Client) -> RetryTransport:
    transport = client._transport  # noqa: SLF001
    assert isinstance(transport, RetryTransport)
    return transport


# ═════════════════════════════════════════════════════════════════════════════
# Defaults
# ═════════════════════════════════════════════════════════════════════════════


def test_build_defaults(recorded: list[dict[str, Any]]) -> None:
    client = ClientBuilder().build()

    assert isinstance(client, RetryClient)
    assert client.total_timeout == 5.0
    assert client.timeout.read == 5.0
    assert client.timeout.connect == 5.0

    retry = _retry_transport(client)
    assert retry.max_retries == 3
    assert retry.policy.backoff == ExponentialBackoff(0.5, 10.0)
    assert retry.logger is None

    (kwargs,) = recorded
    limits: httpx.Limits = kwargs["limits"]
    assert limits.max_keepalive_connections == 100
    assert limits.max_connections == 100
    assert limits.keepalive_expiry == 90.0
    assert kwargs["proxy"] is None


def test_builder_options_are_applied(recorded: list[dict[str, Any]]) -> None:
    client = (
        ClientBuilder()
        .with_max_idle_conns(20)
        .with_max_idle_conns_per_host(10)
        .with_idle_conn_timeout(30)
        .with_tls_handshake_timeout(3)
        .with_timeout(20)
        .with_max_retries(5)
        .with_retry_base_delay(1.0)
        .with_retry_max_delay(8.0)
        .with_retry_strategy(RetryStrategy.JITTER)
        .with_proxy("http://proxy.example.com:8080")
        .build()
    )

    assert client.total_timeout == 20
    assert client.timeout.connect == 3
    assert client.timeout.read == 20
    retry = _retry_transport(client)
    assert retry.max_retries == 5
    assert retry.policy.backoff == JitterBackoff(1.0, 8.0)

    (kwargs,) = recorded
    assert kwargs["limits"].max_keepalive_connections == 20
    assert kwargs["limits"].max_connections == 10
    assert kwargs["limits"].keepalive_expiry == 30
    assert kwargs["proxy"] == "http://proxy.example.com:8080"


def test_disable_keep_alive_keeps_no_idle_connections(recorded: list[dict[str, Any]]) -> None:
    ClientBuilder().with_disable_keep_alive(True).build()
    assert recorded[0]["limits"].max_keepalive_connections == 0


def test_fixed_strategy_uses_base_delay() -> None:
    client = ClientBuilder().with_retry_strategy(RetryStrategy.FIXED).with_retry_base_delay(2.0).build()
    assert _retry_transport(client).policy.backoff == FixedDelay(2.0)


# ═════════════════════════════════════════════════════════════════════════════
# Bounds
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    ("setter", "value", "attr", "default", "label"),
    [
        ("with_max_idle_conns", 0, "max_idle_conns", 100, "max idle connections"),
        ("with_max_idle_conns", 500, "max_idle_conns", 100, "max idle connections"),
        ("with_max_idle_conns_per_host", 201, "max_idle_conns_per_host", 100, "max idle connections per host"),
        ("with_idle_conn_timeout", 0.5, "idle_conn_timeout", 90.0, "idle connection timeout"),
        ("with_tls_handshake_timeout", 16, "tls_handshake_timeout", 10.0, "TLS handshake timeout"),
        ("with_expect_continue_timeout", 6, "expect_continue_timeout", 1.0, "expect continue timeout"),
        ("with_timeout", 31, "timeout", 5.0, "timeout"),
        ("with_max_retries", 0, "max_retries", 3, "max retries"),
        ("with_max_retries", 11, "max_retries", 3, "max retries"),
        ("with_retry_base_delay", 0.1, "retry_base_delay", 0.5, "retry base delay"),
        ("with_retry_max_delay", 121, "retry_max_delay", 10.0, "retry max delay"),
    ],
)
def test_out_of_range_values_fall_back_with_warning(
    setter: str, value: float, attr: str, default: float, label: str,
    logger: BoundLogger, renderer: CapturingRenderer,
) -> None:
    builder = getattr(ClientBuilder().with_logger(logger), setter)(value)

    builder.build()

    assert getattr(builder, attr) == default
    (entry,) = [e for e in renderer.entries if e.level == "warning"]
    assert entry.event == f"Invalid {label}, using default value"
    assert entry.context == {"invalid_value": value, "default_value": default}


@pytest.mark.parametrize(
    ("setter", "value"),
    [
        ("with_max_idle_conns", 1), ("with_max_idle_conns", 200),
        ("with_timeout", 1), ("with_timeout", 30),
        ("with_max_retries", 1), ("with_max_retries", 10),
        ("with_retry_base_delay", 0.3), ("with_retry_max_delay", 120),
    ],
)
def test_bounds_are_inclusive(setter: str, value: float, logger: BoundLogger, renderer: CapturingRenderer) -> None:
    builder = getattr(ClientBuilder().with_logger(logger), setter)(value)
    builder.build()
    assert renderer.entries == []


def test_out_of_range_without_logger_still_falls_back() -> None:
    client = ClientBuilder().with_max_retries(99).build()
    assert _retry_transport(client).max_retries == 3


# ═════════════════════════════════════════════════════════════════════════════
# Strategy & Proxy
# ═════════════════════════════════════════════════════════════════════════════


def test_strategy_from_string() -> None:
    client = ClientBuilder().with_retry_strategy_as_string("fixed").build()
    assert isinstance(_retry_transport(client).policy.backoff, FixedDelay)


def test_invalid_strategy_string_defaults_to_exponential(logger: BoundLogger, renderer: CapturingRenderer) -> None:
    builder = ClientBuilder().with_logger(logger).with_retry_strategy_as_string("linear")

    client = builder.build()

    assert builder.retry_strategy == RetryStrategy.EXPONENTIAL
    assert isinstance(_retry_transport(client).policy.backoff, ExponentialBackoff)
    assert renderer.events("warning") == ["Invalid retry strategy type, using default (Exponential)"]
    assert renderer.entries[0].context["invalid_value"] == "linear"


def test_invalid_strategy_assigned_directly_is_caught_at_build(
    logger: BoundLogger, renderer: CapturingRenderer,
) -> None:
    builder = ClientBuilder().with_logger(logger)
    builder.retry_strategy = "quadratic"

    client = builder.build()

    assert isinstance(_retry_transport(client).policy.backoff, ExponentialBackoff)
    assert renderer.events("warning") == ["No valid retry strategy type set, using default (Exponential)"]


@pytest.mark.parametrize("proxy", ["ftp://proxy.example.com", "not a url", "http://"])
def test_bad_proxy_is_dropped_with_warning(
    proxy: str, recorded: list[dict[str, Any]], logger: BoundLogger, renderer: CapturingRenderer,
) -> None:
    ClientBuilder().with_logger(logger).with_proxy(proxy).build()

    assert recorded[0]["proxy"] is None
    assert renderer.events("warning") == ["Failed to parse proxy URL, proceeding without proxy"]
    assert renderer.entries[0].context["proxy_url"] == proxy


def test_empty_proxy_means_no_proxy(recorded: list[dict[str, Any]], renderer: CapturingRenderer) -> None:
    ClientBuilder().with_logger(BoundLogger(_renderer=renderer)).with_proxy("").build()
    assert recorded[0]["proxy"] is None
    assert renderer.entries == []


# ═════════════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════════════


def test_from_settings() -> None:
    settings = HttpKitSettings(
        retry=RetrySettings(max_retries=7, base_delay=1.5, max_delay=30.0, strategy="jitter"),
        http=HttpSettings(timeout=12.0, max_idle_conns=50, disable_keep_alive=True),
    )

    builder = ClientBuilder.from_settings(settings)

    assert builder.max_retries == 7
    assert builder.retry_base_delay == 1.5
    assert builder.retry_max_delay == 30.0
    assert builder.retry_strategy == RetryStrategy.JITTER
    assert builder.timeout == 12.0
    assert builder.max_idle_conns == 50
    assert builder.disable_keep_alive is True
    assert builder.proxy_url == ""


# ═════════════════════════════════════════════════════════════════════════════
# Assembled Client
# ═════════════════════════════════════════════════════════════════════════════


def test_built_client_retries_through_injected_transport() -> None:
    mock = ScriptedTransport([503, 200])
    client = (
        ClientBuilder()
        .with_transport(mock)
        .with_retry_strategy(RetryStrategy.FIXED)
        .with_retry_base_delay(0.3)
        .build()
    )

    with client:
        assert client.get(URL).status_code == 200
    mock.assert_called(times=2)
    assert mock.closed


def test_send_attaches_overall_deadline() -> None:
    mock = ScriptedTransport([200])
    client = ClientBuilder().with_transport(mock).with_timeout(4).build()

    client.get(URL)

    token = mock.last_call.extensions[CANCEL_TOKEN]  # type: ignore[union-attr]
    assert isinstance(token, CancelToken)
    remaining = token.remaining()
    assert remaining is not None and 0 < remaining <= 4


def test_send_tightens_existing_token_and_keeps_its_signal() -> None:
    mock = ScriptedTransport([200])
    client = ClientBuilder().with_transport(mock).with_timeout(2).build()
    caller_token = CancelToken.with_timeout(60)

    client.send(client.build_request("GET", URL, extensions={CANCEL_TOKEN: caller_token}))

    token = mock.last_call.extensions[CANCEL_TOKEN]  # type: ignore[union-attr]
    assert token.remaining() <= 2
    caller_token.cancel("caller stop")
    assert token.cancelled


def test_resending_a_request_gets_a_fresh_deadline() -> None:
    mock = ScriptedTransport([200])
    client = RetryClient(transport=RetryTransport(mock, max_retries=0), total_timeout=0.2)
    request = client.build_request("GET", URL)

    assert client.send(request).status_code == 200
    time.sleep(0.3)
    assert client.send(request).status_code == 200

    mock.assert_called(times=2)
    assert CANCEL_TOKEN not in request.extensions


def test_send_leaves_caller_token_in_place() -> None:
    mock = ScriptedTransport([200])
    client = RetryClient(transport=RetryTransport(mock, max_retries=0), total_timeout=2)
    caller_token = CancelToken()
    request = client.build_request("GET", URL, extensions={CANCEL_TOKEN: caller_token})

    client.send(request)

    assert request.extensions[CANCEL_TOKEN] is caller_token
    assert caller_token.remaining() is None
    assert mock.last_call.extensions[CANCEL_TOKEN] is not caller_token  # type: ignore[union-attr]


def test_new_retry_client_defaults() -> None:
    client = new_retry_client()

    assert client.total_timeout is None
    retry = _retry_transport(client)
    assert retry.max_retries == 3
    assert retry.policy.backoff == ExponentialBackoff(0.5, 10.0)
    assert isinstance(retry.transport, httpx.HTTPTransport)
    client.close()


def test_new_retry_client_without_deadline_attaches_no_token() -> None:
    mock = ScriptedTransport([500, 200])
    client = new_retry_client(max_retries=1, backoff=FixedDelay(0.0), transport=mock)

    assert client.get(URL).status_code == 200
    assert CANCEL_TOKEN not in mock.last_call.extensions  # type: ignore[union-attr]
