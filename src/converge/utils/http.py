"""Shared helpers for the OpenAI-compatible HTTP services."""

from __future__ import annotations

import json
from typing import Any, Dict

import httpx

from converge.errors import ApiError, ConfigurationError, ParseError

ATTRIBUTION_HEADERS = {
    "HTTP-Referer": "https://github.com/converge-notes",
    "X-Title": "Converge",
}


def build_headers(api_key: str) -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
        **ATTRIBUTION_HEADERS,
    }


def require_settings(*, api_key: str, endpoint: str) -> None:
    if not api_key:
        raise ConfigurationError("No API key configured")
    if not endpoint:
        raise ConfigurationError("No API endpoint configured")


def new_async_client() -> httpx.AsyncClient:
    # Requests have no deadline; wrap a call in asyncio.wait_for to bound it.
    return httpx.AsyncClient(timeout=None)


def ensure_success(status: int, body: str) -> None:
    if not 200 <= status < 300:
        raise ApiError(status, body)


def decode_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON response: {text[:100]}") from exc
