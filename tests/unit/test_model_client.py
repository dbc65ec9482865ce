from __future__ import annotations

import io
import json
from typing import Any
from urllib import error

import pytest

from agent_pipeline.config.settings import Settings
from agent_pipeline.errors import TransportError, TransportFailureKind
from agent_pipeline.llm import client as client_module
from agent_pipeline.llm.client import (
    ChatMessage,
    OpenAIChatClient,
    build_model_client,
    classify_failure_message,
    classify_http_status,
)

MESSAGES = [ChatMessage(role="user", content="hello")]


def _client(**kwargs: Any) -> OpenAIChatClient:
    options = {"model": "gpt-test", "base_url": "http://llm.local/v1", "api_key": "sk-test"}
    options.update(kwargs)
    return OpenAIChatClient(**options)


def _json_response(payload: dict[str, Any]) -> io.BytesIO:
    return io.BytesIO(json.dumps(payload).encode("utf-8"))


def _http_error(code: int, body: bytes = b"error") -> error.HTTPError:
    url = "http://llm.local/v1/chat/completions"
    return error.HTTPError(url, code, "err", {}, io.BytesIO(body))


def test_complete_posts_chat_request(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_urlopen(req: Any, timeout: float) -> io.BytesIO:
        captured["url"] = req.full_url
        captured["auth"] = req.get_header("Authorization")
        captured["body"] = json.loads(req.data.decode("utf-8"))
        return _json_response({"choices": [{"message": {"content": "hi there"}}]})

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)

    assert _client().complete(MESSAGES) == "hi there"
    assert captured["url"] == "http://llm.local/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["body"]["model"] == "gpt-test"
    assert captured["body"]["messages"] == [{"role": "user", "content": "hello"}]


def test_stream_yields_deltas_until_done(monkeypatch: pytest.MonkeyPatch) -> None:
    lines = [
        b'data: {"choices": [{"delta": {"content": "Hel"}}]}\n',
        b"\n",
        b'data: {"choices": [{"delta": {"content": "lo"}}]}\n',
        b"data: [DONE]\n",
        b'data: {"choices": [{"delta": {"content": "ignored"}}]}\n',
    ]
    monkeypatch.setattr(
        client_module.request, "urlopen", lambda req, timeout: io.BytesIO(b"".join(lines))
    )

    assert list(_client().stream(MESSAGES)) == ["Hel", "lo"]


def test_rate_limit_is_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []

    def fake_urlopen(req: Any, timeout: float) -> io.BytesIO:
        calls.append(1)
        if len(calls) == 1:
            raise _http_error(429, b"slow down")
        return _json_response({"choices": [{"message": {"content": "ok"}}]})

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)

    assert _client(max_retries=1, backoff_s=0).complete(MESSAGES) == "ok"
    assert len(calls) == 2


def test_auth_failure_is_not_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []

    def fake_urlopen(req: Any, timeout: float) -> io.BytesIO:
        calls.append(1)
        raise _http_error(401, b"bad key")

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)

    with pytest.raises(TransportError) as exc_info:
        _client(max_retries=3, backoff_s=0).complete(MESSAGES)
    assert exc_info.value.kind == TransportFailureKind.AUTH
    assert exc_info.value.status_code == 401
    assert len(calls) == 1


def test_connection_failure_is_a_network_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req: Any, timeout: float) -> io.BytesIO:
        raise error.URLError("Connection refused")

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)

    with pytest.raises(TransportError) as exc_info:
        _client(max_retries=0).complete(MESSAGES)
    assert exc_info.value.kind == TransportFailureKind.NETWORK
    assert exc_info.value.retryable


class _StalledBody(io.BytesIO):
    def read(self, *args: Any) -> bytes:
        raise TimeoutError("The read operation timed out")


class _DroppedStream(io.BytesIO):
    def __iter__(self) -> Any:
        yield b'data: {"choices": [{"delta": {"content": "Hel"}}]}\n'
        raise ConnectionResetError("Connection reset by peer")


def test_body_read_timeout_is_a_retried_network_error(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []

    def fake_urlopen(req: Any, timeout: float) -> io.BytesIO:
        calls.append(1)
        return _StalledBody()

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)

    with pytest.raises(TransportError) as exc_info:
        _client(max_retries=1, backoff_s=0, timeout_s=2.0).complete(MESSAGES)
    assert exc_info.value.kind == TransportFailureKind.NETWORK
    assert "timed out after 2.0s" in str(exc_info.value)
    assert len(calls) == 2


def test_stream_interrupted_mid_body_is_a_network_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(client_module.request, "urlopen", lambda req, timeout: _DroppedStream())
    chunks: list[str] = []

    with pytest.raises(TransportError) as exc_info:
        for chunk in _client().stream(MESSAGES):
            chunks.append(chunk)
    assert chunks == ["Hel"]
    assert exc_info.value.kind == TransportFailureKind.NETWORK
    assert "Connection reset by peer" in str(exc_info.value)


def test_response_without_choices_is_invalid(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        client_module.request, "urlopen", lambda req, timeout: _json_response({"choices": []})
    )

    with pytest.raises(TransportError) as exc_info:
        _client().complete(MESSAGES)
    assert exc_info.value.kind == TransportFailureKind.INVALID_RESPONSE


def test_failure_classification() -> None:
    assert classify_http_status(403) == TransportFailureKind.AUTH
    assert classify_http_status(429) == TransportFailureKind.RATE_LIMIT
    assert classify_http_status(503) == TransportFailureKind.SERVER
    assert classify_http_status(400) == TransportFailureKind.INVALID_RESPONSE
    assert classify_failure_message("Invalid API key provided") == TransportFailureKind.AUTH
    assert classify_failure_message("Rate limit reached") == TransportFailureKind.RATE_LIMIT
    assert classify_failure_message("Name or service not known") == TransportFailureKind.NETWORK


def test_build_model_client_reads_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    settings = Settings(_env_file=None, llm_model="gpt-x", openai_api_key="")

    client = build_model_client(settings)

    assert client.model_name == "gpt-x"
    assert client.api_key == "sk-env"
