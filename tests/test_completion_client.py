from __future__ import annotations

import json
import socket
import threading
import time
from typing import Callable

import httpx
import pytest

from relay.clients import CompletionClient
from relay.core.models import Message
from relay.core.prompt import MODEL_ID, OPENROUTER_API_URL, UPSTREAM_TIMEOUT
from relay.errors import (
    EmptyUpstreamResponse,
    UpstreamProtocolError,
    UpstreamTransportError,
)

HISTORY = [
    Message(role="system", content="You are a helpful assistant."),
    Message(role="user", content="Hello"),
]


Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> CompletionClient:
    return CompletionClient(api_key="sk-test", transport=httpx.MockTransport(handler))


def test_completion_client_sends_openrouter_wire_format() -> None:
    captured: dict[str, object] = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("authorization")
        captured["content_type"] = request.headers.get("content-type")
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": "Hi there"}}]},
        )

    reply = _client(_handler).complete(HISTORY)

    assert reply == "Hi there"
    assert captured["url"] == OPENROUTER_API_URL
    assert captured["auth"] == "Bearer sk-test"
    assert captured["content_type"] == "application/json"
    assert captured["body"] == {
        "model": MODEL_ID,
        "messages": [
            {"role": "system", "content": "You are a helpful assistant."},
            {"role": "user", "content": "Hello"},
        ],
    }


def test_completion_client_uses_first_choice() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "gen-1",
                "choices": [
                    {"message": {"role": "assistant", "content": "first"}},
                    {"message": {"role": "assistant", "content": "second"}},
                ],
            },
        )

    assert _client(_handler).complete(HISTORY) == "first"


def test_completion_client_raises_protocol_error_on_500() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text='{"error": {"message": "provider exploded"}}')

    with pytest.raises(UpstreamProtocolError) as exc_info:
        _client(_handler).complete(HISTORY)

    assert exc_info.value.upstream_status == 500
    assert "provider exploded" in (exc_info.value.upstream_body or "")


def test_completion_client_raises_protocol_error_on_unparseable_body() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(UpstreamProtocolError):
        _client(_handler).complete(HISTORY)


def test_completion_client_raises_protocol_error_on_wrong_shape() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"text": "legacy"}]})

    with pytest.raises(UpstreamProtocolError):
        _client(_handler).complete(HISTORY)


@pytest.mark.parametrize("payload", [{"choices": []}, {}])
def test_completion_client_raises_on_zero_choices(payload: dict) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    with pytest.raises(EmptyUpstreamResponse):
        _client(_handler).complete(HISTORY)


def test_completion_client_wraps_network_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamTransportError) as exc_info:
        _client(_handler).complete(HISTORY)

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_completion_client_times_out_against_silent_server() -> None:
    # Accepts connections into the backlog but never answers.
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    host, port = server.getsockname()
    client = CompletionClient(
        api_key="sk-test",
        url=f"http://{host}:{port}/api/v1/chat/completions",
        timeout=0.3,
    )

    start = time.perf_counter()
    try:
        with pytest.raises(UpstreamTransportError) as exc_info:
            client.complete(HISTORY)
    finally:
        server.close()
    elapsed = time.perf_counter() - start

    assert isinstance(exc_info.value.__cause__, httpx.TimeoutException)
    assert 0.25 <= elapsed < 2.0


def test_completion_client_defaults_to_thirty_second_timeout() -> None:
    client = CompletionClient(api_key="sk-test")

    assert UPSTREAM_TIMEOUT == 30.0
    assert client.timeout == UPSTREAM_TIMEOUT


def _trickle(server: socket.socket, stop: threading.Event) -> None:
    conn, _ = server.accept()
    with conn:
        conn.recv(65536)
        conn.sendall(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: application/json\r\n"
            b"Content-Length: 1000\r\n\r\n"
        )
        while not stop.is_set():
            try:
                conn.sendall(b" ")
            except OSError:
                return
            time.sleep(0.05)


def test_completion_client_enforces_overall_deadline_on_trickling_body() -> None:
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    host, port = server.getsockname()
    stop = threading.Event()
    worker = threading.Thread(target=_trickle, args=(server, stop), daemon=True)
    worker.start()
    client = CompletionClient(
        api_key="sk-test",
        url=f"http://{host}:{port}/api/v1/chat/completions",
        timeout=0.3,
    )

    start = time.perf_counter()
    try:
        with pytest.raises(UpstreamTransportError):
            client.complete(HISTORY)
    finally:
        stop.set()
        server.close()
    elapsed = time.perf_counter() - start

    assert elapsed < 1.5
