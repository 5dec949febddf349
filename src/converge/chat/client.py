"""Chat completion service client."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import httpx

from converge.config import DEFAULT_CHAT_ENDPOINT, DEFAULT_CHAT_MODEL, AppConfig
from converge.errors import ApiError, ParseError, TransportError
from converge.models import ChatMessage
from converge.utils.http import (
    build_headers,
    decode_json,
    ensure_success,
    new_async_client,
    require_settings,
)

LOGGER = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(slots=True)
class CompletionConfig:
    endpoint: str = DEFAULT_CHAT_ENDPOINT
    model_name: str = DEFAULT_CHAT_MODEL
    api_key: str = ""

    @classmethod
    def from_app_config(cls, config: AppConfig) -> "CompletionConfig":
        return cls(endpoint=config.chat_endpoint, model_name=config.chat_model, api_key=config.api_key)


def parse_stream_line(line: str) -> Tuple[bool, Optional[str]]:
    """Decode one server-sent-event line.

    Returns ``(done, delta)``: ``done`` is true on the ``[DONE]`` sentinel and
    ``delta`` is the content fragment, or ``None`` for lines that carry nothing
    usable (comments, keep-alives, malformed JSON).
    """
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return False, None
    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return True, None
    try:
        data = json.loads(payload)
        content = data["choices"][0]["delta"].get("content")
    except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError):
        LOGGER.debug("Skipping malformed stream fragment: %s", payload[:100])
        return False, None
    if not isinstance(content, str) or not content:
        return False, None
    return False, content


def _message_dicts(messages: Sequence[ChatMessage]) -> List[Dict[str, str]]:
    return [message.to_dict() for message in messages]


class CompletionClient:
    """Async client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self, config: CompletionConfig | None = None, *, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config or CompletionConfig()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = new_async_client()
        return self._client

    def _payload(self, messages: Sequence[ChatMessage], *, stream: bool) -> Dict[str, Any]:
        return {"model": self.config.model_name, "messages": _message_dicts(messages), "stream": stream}

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        """Return the full assistant reply in one response."""
        require_settings(api_key=self.config.api_key, endpoint=self.config.endpoint)
        LOGGER.info("Requesting completion from %s (%s)", self.config.endpoint, self.config.model_name)
        try:
            response = await self.client.post(
                self.config.endpoint,
                headers=build_headers(self.config.api_key),
                json=self._payload(messages, stream=False),
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Completion request failed: {exc}") from exc

        ensure_success(response.status_code, response.text)
        data = decode_json(response.text)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ParseError(f"Unexpected completion response: {response.text[:100]}") from exc
        return content or ""

    async def stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """Yield content deltas in arrival order until ``[DONE]`` or end of body."""
        require_settings(api_key=self.config.api_key, endpoint=self.config.endpoint)
        LOGGER.info("Streaming completion from %s (%s)", self.config.endpoint, self.config.model_name)
        try:
            async with self.client.stream(
                "POST",
                self.config.endpoint,
                headers=build_headers(self.config.api_key),
                json=self._payload(messages, stream=True),
            ) as response:
                if not 200 <= response.status_code < 300:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ApiError(response.status_code, body)
                async for line in response.aiter_lines():
                    done, delta = parse_stream_line(line)
                    if done:
                        return
                    if delta is not None:
                        yield delta
        except httpx.HTTPError as exc:
            raise TransportError(f"Completion stream failed: {exc}") from exc

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
