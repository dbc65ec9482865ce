"""Model client interface and an OpenAI-compatible chat completions adapter."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Literal, Protocol
from urllib import error, request

from pydantic import BaseModel

from agent_pipeline.config.settings import Settings
from agent_pipeline.errors import TransportError, TransportFailureKind
from agent_pipeline.utils.concurrency import CancellationToken, retry

logger = logging.getLogger(__name__)

_AUTH_PATTERNS = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "authentication",
    "permission denied",
)
_RATE_LIMIT_PATTERNS = ("too many requests", "rate limit", "quota", "try again later")


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ModelClient(Protocol):
    model_name: str

    def complete(
        self, messages: list[ChatMessage], *, cancel_token: CancellationToken | None = None
    ) -> str: ...

    def stream(
        self, messages: list[ChatMessage], *, cancel_token: CancellationToken | None = None
    ) -> Iterator[str]: ...


def classify_http_status(status_code: int) -> TransportFailureKind:
    if status_code in {401, 403}:
        return TransportFailureKind.AUTH
    if status_code == 429:
        return TransportFailureKind.RATE_LIMIT
    if status_code >= 500:
        return TransportFailureKind.SERVER
    return TransportFailureKind.INVALID_RESPONSE


def classify_failure_message(message: str) -> TransportFailureKind:
    haystack = message.lower()
    if any(pattern in haystack for pattern in _AUTH_PATTERNS):
        return TransportFailureKind.AUTH
    if any(pattern in haystack for pattern in _RATE_LIMIT_PATTERNS):
        return TransportFailureKind.RATE_LIMIT
    return TransportFailureKind.NETWORK


class OpenAIChatClient:
    """Chat completions over any OpenAI-compatible endpoint."""

    def __init__(
        self,
        *,
        model: str,
        base_url: str,
        api_key: str = "",
        timeout_s: float = 60.0,
        max_retries: int = 1,
        backoff_s: float = 0.5,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> None:
        self.model_name = model
        self.base_url = base_url
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self.temperature = temperature
        self.max_tokens = max_tokens

    def complete(
        self, messages: list[ChatMessage], *, cancel_token: CancellationToken | None = None
    ) -> str:
        body = self._request_body(messages, stream=False)
        response_json = retry(
            lambda: self._request_once(body),
            max_retries=self.max_retries,
            delay_s=self.backoff_s,
            retry_if=_is_retryable,
            cancel_token=cancel_token,
        )
        return _extract_content(response_json)

    def stream(
        self, messages: list[ChatMessage], *, cancel_token: CancellationToken | None = None
    ) -> Iterator[str]:
        body = self._request_body(messages, stream=True)
        response = retry(
            lambda: self._open(body),
            max_retries=self.max_retries,
            delay_s=self.backoff_s,
            retry_if=_is_retryable,
            cancel_token=cancel_token,
        )
        with response:
            for raw_line in self._read_lines(response):
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                line = raw_line.decode("utf-8").strip()
                if not line.startswith("data:"):
                    continue
                data = line[len("data:") :].strip()
                if data == "[DONE]":
                    return
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError as exc:
                    raise TransportError(
                        TransportFailureKind.INVALID_RESPONSE, "Malformed stream chunk"
                    ) from exc
                choices = chunk.get("choices") or []
                if not choices:
                    continue
                delta = (choices[0].get("delta") or {}).get("content")
                if delta:
                    yield delta

    def _request_body(self, messages: list[ChatMessage], *, stream: bool) -> dict[str, Any]:
        return {
            "model": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": stream,
            "messages": [message.model_dump() for message in messages],
        }

    def _request_once(self, body: dict[str, Any]) -> dict[str, Any]:
        with self._open(body) as response:
            try:
                raw = response.read().decode("utf-8")
            except OSError as exc:
                raise self._read_failure(exc) from exc
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise TransportError(
                TransportFailureKind.INVALID_RESPONSE, "Model endpoint returned non-JSON response"
            ) from exc

    def _read_lines(self, response: Any) -> Iterator[bytes]:
        lines = iter(response)
        while True:
            try:
                line = next(lines)
            except StopIteration:
                return
            except OSError as exc:
                raise self._read_failure(exc) from exc
            yield line

    def _read_failure(self, exc: OSError) -> TransportError:
        logger.warning("llm_request event=read_error model=%s error=%s", self.model_name, exc)
        if isinstance(exc, TimeoutError):
            message = f"Model response timed out after {self.timeout_s:.1f}s"
        else:
            message = f"Model response interrupted: {exc}"
        return TransportError(TransportFailureKind.NETWORK, message)

    def _open(self, body: dict[str, Any]) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        req = request.Request(
            url=f"{self.base_url.rstrip('/')}/chat/completions",
            data=json.dumps(body).encode("utf-8"),
            method="POST",
            headers=headers,
        )
        try:
            return request.urlopen(req, timeout=self.timeout_s)
        except error.HTTPError as exc:
            message = exc.read().decode("utf-8", errors="replace")
            logger.warning(
                "llm_request event=http_error status=%d model=%s", exc.code, self.model_name
            )
            raise TransportError(
                classify_http_status(exc.code),
                f"Model request failed with status {exc.code}: {message[:400]}",
                status_code=exc.code,
            ) from exc
        except error.URLError as exc:
            reason = str(exc.reason)
            logger.warning("llm_request event=url_error reason=%s", reason)
            raise TransportError(
                classify_failure_message(reason), f"Model request failed: {reason}"
            ) from exc
        except TimeoutError as exc:
            raise TransportError(
                TransportFailureKind.NETWORK,
                f"Model request timed out after {self.timeout_s:.1f}s",
            ) from exc


def build_model_client(settings: Settings) -> OpenAIChatClient:
    return OpenAIChatClient(
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        api_key=settings.resolved_openai_api_key(),
        timeout_s=settings.llm_timeout_s,
        max_retries=settings.llm_max_retries,
        backoff_s=settings.llm_backoff_s,
    )


def _is_retryable(exc: Exception) -> bool:
    return isinstance(exc, TransportError) and exc.retryable


def _extract_content(response_json: dict[str, Any]) -> str:
    choices = response_json.get("choices") or []
    if not choices:
        raise TransportError(TransportFailureKind.INVALID_RESPONSE, "Response missing choices")
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and isinstance(item.get("text"), str)
        )
    raise TransportError(TransportFailureKind.INVALID_RESPONSE, "Response missing message content")
