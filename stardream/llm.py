"""Chat transport — HTTP connection to an OpenAI-compatible chat backend.

The game injects a transport matching the protocol:

    async def stream_chat(self, messages, on_chunk, on_done=None) -> str: ...
    async def chat(self, messages) -> str: ...

`messages` is an ordered list of {"role": ..., "content": ...} dicts.
`stream_chat` calls `on_chunk(text)` for every delta in order, `on_done()`
exactly once on success, and returns the accumulated text. Both methods
raise on transport failure.

Two implementations are provided:

    HttpChat  — real HTTP client for POST {base}/v1/chat/completions,
                streaming over server-sent events.
    EchoChat  — replies with the last user message. Useful for smoke-testing
                the game loop without a running model.

Tests use StubChat (tests/conftest.py) instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]


# ---------------------------------------------------------------------------
# Protocol — every transport must match these signatures
# ---------------------------------------------------------------------------

class ChatTransport(Protocol):
    async def stream_chat(
        self,
        messages: list[ChatMessage],
        on_chunk: Callable[[str], None],
        on_done: Callable[[], None] | None = None,
    ) -> str: ...

    async def chat(self, messages: list[ChatMessage]) -> str: ...


# ---------------------------------------------------------------------------
# HttpChat — connects to a real backend
# ---------------------------------------------------------------------------

class HttpChat:
    """Async HTTP client for OpenAI-compatible chat completion backends.

    Request:  POST {base}/v1/chat/completions  {"messages": [...], "stream": bool}
    Response: {"choices": [{"message": {"content": "..."}}]}
    Stream:   "data: {"choices": [{"delta": {"content": "..."}}]}" lines,
              terminated by "data: [DONE]"

    Args:
        provider_url: Base URL of the backend, e.g. "http://localhost:5001".
        api_key:      Bearer token, or empty string if not required.
        model:        Model identifier, sent only when non-empty.
        timeout:      HTTP timeout in seconds. Defaults to 120.
        transport:    Optional httpx transport, for tests.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        model: str = "",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self._base_url}/v1/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _body(self, messages: list[ChatMessage], stream: bool) -> dict:
        body: dict = {"messages": messages, "stream": stream}
        if self._model:
            body["model"] = self._model
        return body

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def chat(self, messages: list[ChatMessage]) -> str:
        logger.debug("chat url=%s messages=%d", self.url, len(messages))
        try:
            async with self._client() as client:
                resp = await client.post(
                    self.url, json=self._body(messages, stream=False), headers=self._headers()
                )
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"LLM backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e

        try:
            text = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError("Unexpected response format from chat backend") from e
        logger.debug("chat response len=%d", len(text or ""))
        return text or ""

    async def stream_chat(
        self,
        messages: list[ChatMessage],
        on_chunk: Callable[[str], None],
        on_done: Callable[[], None] | None = None,
    ) -> str:
        logger.debug("stream_chat url=%s messages=%d", self.url, len(messages))
        parts: list[str] = []
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", self.url,
                    json=self._body(messages, stream=True), headers=self._headers(),
                ) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        payload = parse_sse_line(line)
                        if payload is None:
                            continue
                        if payload == "[DONE]":
                            break
                        delta = _delta_content(payload)
                        if delta:
                            parts.append(delta)
                            on_chunk(delta)
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"LLM backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e

        text = "".join(parts)
        logger.debug("stream_chat response len=%d chunks=%d", len(text), len(parts))
        if on_done is not None:
            on_done()
        return text


def parse_sse_line(line: str) -> str | None:
    """Return the payload of a "data:" line, or None for anything else."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    return line[len("data:"):].strip()


def _delta_content(payload: str) -> str:
    try:
        data = json.loads(payload)
        return data["choices"][0].get("delta", {}).get("content") or ""
    except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError):
        logger.warning("Skipping malformed stream chunk: %r", payload[:200])
        return ""


# ---------------------------------------------------------------------------
# EchoChat — replies with the last user message; no network calls
# ---------------------------------------------------------------------------

class EchoChat:
    """Echoes the last user message back, streamed as a single chunk.

    Lets you verify the game wiring (prompt building, parsing, saves) end to
    end without a running model.
    """

    async def chat(self, messages: list[ChatMessage]) -> str:
        return _last_user(messages)

    async def stream_chat(
        self,
        messages: list[ChatMessage],
        on_chunk: Callable[[str], None],
        on_done: Callable[[], None] | None = None,
    ) -> str:
        text = _last_user(messages)
        logger.debug("EchoChat messages=%d len=%d", len(messages), len(text))
        if text:
            on_chunk(text)
        if on_done is not None:
            on_done()
        return text


def _last_user(messages: list[ChatMessage]) -> str:
    for msg in reversed(messages):
        if msg.get("role") == "user":
            return msg.get("content", "")
    return ""


# ---------------------------------------------------------------------------
# LLMError — raised by HttpChat for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the chat backend cannot be reached or returns an error."""
