"""Embedding service client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
import numpy as np

from converge.config import DEFAULT_EMBEDDING_ENDPOINT, DEFAULT_EMBEDDING_MODEL, AppConfig
from converge.errors import ParseError, TransportError
from converge.utils.http import (
    build_headers,
    decode_json,
    ensure_success,
    new_async_client,
    require_settings,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingConfig:
    endpoint: str = DEFAULT_EMBEDDING_ENDPOINT
    model_name: str = DEFAULT_EMBEDDING_MODEL
    api_key: str = ""

    @classmethod
    def from_app_config(cls, config: AppConfig) -> "EmbeddingConfig":
        return cls(
            endpoint=config.embedding_endpoint,
            model_name=config.embedding_model,
            api_key=config.api_key,
        )


def _extract_embedding(payload: Any) -> np.ndarray:
    try:
        vector = payload["data"][0]["embedding"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ParseError("Embedding response has no data[0].embedding") from exc
    if not isinstance(vector, list) or not vector:
        raise ParseError("Embedding response carries an empty vector")
    try:
        array = np.asarray(vector, dtype="float32")
    except (TypeError, ValueError) as exc:
        raise ParseError("Embedding vector is not numeric") from exc
    if array.ndim != 1:
        raise ParseError(f"Embedding vector must be flat, got {array.ndim} dimensions")
    return array


class EmbeddingClient:
    """Thin async wrapper around an OpenAI-compatible ``/embeddings`` endpoint.

    A single call embeds a single text. Failures are raised as-is: this client
    never retries.
    """

    def __init__(
        self, config: EmbeddingConfig | None = None, *, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config or EmbeddingConfig()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = new_async_client()
        return self._client

    async def embed(self, text: str) -> np.ndarray:
        """Return the float32 embedding of ``text``."""
        require_settings(api_key=self.config.api_key, endpoint=self.config.endpoint)
        try:
            response = await self.client.post(
                self.config.endpoint,
                headers=build_headers(self.config.api_key),
                json={"model": self.config.model_name, "input": text},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Embedding request failed: {exc}") from exc

        ensure_success(response.status_code, response.text)
        vector = _extract_embedding(decode_json(response.text))
        logger.debug("Embedded %d chars into %d dimensions", len(text), vector.shape[0])
        return vector

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "EmbeddingClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
