"""Shared fixtures for the test suite."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Iterable, List, Sequence

import numpy as np
import pytest

from converge.errors import ApiError
from converge.index.indexer import IndexService
from converge.index.storage import JsonIndexStore
from converge.config import AppConfig
from converge.models import ChatMessage, IndexedChunk, VaultIndex
from converge.services import Services
from converge.vault import Vault

TOPICS = ("alpha", "beta", "gamma")


def topic_vector(text: str) -> np.ndarray:
    """Embedding that counts topic words, so related texts point the same way."""
    lowered = text.lower()
    return np.array([lowered.count(topic) for topic in TOPICS], dtype="float32")


class FakeEmbedder:
    """In-memory stand-in for ``EmbeddingClient``."""

    def __init__(self, fail_on: Iterable[str] = ()) -> None:
        self.fail_on = tuple(fail_on)
        self.calls: List[str] = []

    async def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise ApiError(500, "embedding failed")
        return topic_vector(text)

    async def aclose(self) -> None:
        return None


class FakeCompletion:
    """Scripted stand-in for ``CompletionClient``."""

    def __init__(self, deltas: Sequence[str] = ("Hel", "lo"), error: Exception | None = None) -> None:
        self.deltas = list(deltas)
        self.error = error
        self.requests: List[List[ChatMessage]] = []
        self.methods: List[str] = []
        self.gate: asyncio.Event | None = None

    async def stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        self.requests.append(list(messages))
        self.methods.append("stream")
        if self.error is not None:
            raise self.error
        for delta in self.deltas:
            if self.gate is not None:
                await self.gate.wait()
            yield delta

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        self.requests.append(list(messages))
        self.methods.append("complete")
        if self.error is not None:
            raise self.error
        return "".join(self.deltas)

    async def aclose(self) -> None:
        return None


def make_chunk(ref: str, embedding, text: str = "text", start: int = 0, end: int = 0) -> IndexedChunk:
    return IndexedChunk(
        document_ref=ref,
        text=text,
        embedding=np.asarray(embedding, dtype="float32"),
        start_line=start,
        end_line=end,
    )


def make_index(chunks: List[IndexedChunk]) -> VaultIndex:
    return VaultIndex(chunks=tuple(chunks), last_updated=1_700_000_000.0)


@pytest.fixture
def vault_dir(tmp_path: Path) -> Path:
    """Vault with two alpha notes, one beta note and a hidden folder."""
    root = tmp_path / "vault"
    (root / "projects").mkdir(parents=True)
    (root / ".converge").mkdir()
    (root / "alpha.md").write_text(" ".join(["alpha"] * 120), encoding="utf-8")
    (root / "projects" / "alpha-notes.md").write_text(
        "alpha planning\nalpha review\nalpha", encoding="utf-8"
    )
    (root / "beta.md").write_text(" ".join(["beta"] * 120), encoding="utf-8")
    (root / ".converge" / "ignored.md").write_text("alpha", encoding="utf-8")
    (root / "readme.txt").write_text("not a note", encoding="utf-8")
    return root


@pytest.fixture
def vault(vault_dir: Path) -> Vault:
    return Vault(vault_dir)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def index_service(vault: Vault, embedder: FakeEmbedder) -> IndexService:
    store = JsonIndexStore(vault.data_dir / "index.json")
    return IndexService(vault, embedder, store, chunk_size=500, overlap=50)


def make_services(
    config: AppConfig,
    embedder: FakeEmbedder | None = None,
    completion: FakeCompletion | None = None,
) -> Services:
    """``build_services`` with the network clients swapped for fakes."""
    vault = Vault(config.vault_path)
    embedder = embedder or FakeEmbedder()
    index = IndexService(
        vault,
        embedder,
        JsonIndexStore(config.resolve_index_path()),
        chunk_size=config.chunk_size,
        overlap=config.chunk_overlap,
    )
    index.load()
    return Services(
        config=config,
        vault=vault,
        embedder=embedder,  # type: ignore[arg-type]
        completion=completion or FakeCompletion(),  # type: ignore[arg-type]
        index=index,
    )
