"""Vault indexing pipeline and the live index it maintains."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Protocol

import numpy as np

from converge.errors import ConcurrencyRejected, ConvergeError
from converge.index.search import search
from converge.index.storage import JsonIndexStore
from converge.models import IndexedChunk, SearchResult, VaultIndex
from converge.utils.text import chunk_text, clamp_overlap
from converge.vault import Vault

LOGGER = logging.getLogger(__name__)


class Embedder(Protocol):
    async def embed(self, text: str) -> np.ndarray: ...


@dataclass(slots=True)
class IndexStats:
    documents: int = 0
    chunks: int = 0
    failed_chunks: int = 0
    skipped_documents: int = 0
    persisted: bool = False
    processed_files: list[str] = field(default_factory=list)


class IndexService:
    """Owns the current vault index and rebuilds it on demand.

    Readers always see a complete snapshot: a rebuild assembles a new
    ``VaultIndex`` on the side and swaps it in with a single assignment.
    """

    def __init__(
        self,
        vault: Vault,
        embedder: Embedder,
        store: JsonIndexStore,
        *,
        chunk_size: int = 500,
        overlap: int = 50,
    ) -> None:
        self.vault = vault
        self.embedder = embedder
        self.store = store
        self.chunk_size = chunk_size
        self.overlap = clamp_overlap(chunk_size, overlap)
        self._index = VaultIndex.empty()
        self._rebuilding = False

    @property
    def index(self) -> VaultIndex:
        return self._index

    @property
    def is_rebuilding(self) -> bool:
        return self._rebuilding

    def load(self) -> VaultIndex:
        """Replace the live index with the persisted one, if it can be read."""
        try:
            self._index = self.store.load(self.vault.resolve)
        except (ConvergeError, OSError) as exc:
            LOGGER.error("Failed to load index from %s: %s", self.store.path, exc)
            self._index = VaultIndex.empty()
        return self._index

    async def rebuild(self) -> IndexStats:
        """Re-embed the whole vault and swap in the result.

        Raises ``ConcurrencyRejected`` when a rebuild is already running.
        """
        if self._rebuilding:
            raise ConcurrencyRejected("Index rebuild already in progress")

        self._rebuilding = True
        try:
            stats = IndexStats()
            chunks: List[IndexedChunk] = []
            for ref in self.vault.list_documents():
                try:
                    content = self.vault.read(ref)
                except OSError as exc:
                    LOGGER.warning("Failed to read %s: %s", ref, exc)
                    stats.skipped_documents += 1
                    continue

                LOGGER.info("Processing: %s", ref)
                chunks.extend(await self._embed_document(ref, content, stats))
                stats.documents += 1
                stats.processed_files.append(ref)

            self._index = VaultIndex.build(chunks)
            stats.chunks = len(chunks)
        finally:
            self._rebuilding = False

        stats.persisted = self.persist()
        return stats

    async def _embed_document(self, ref: str, content: str, stats: IndexStats) -> List[IndexedChunk]:
        embedded: List[IndexedChunk] = []
        for piece in chunk_text(content, target_size=self.chunk_size, overlap=self.overlap):
            if not piece.text.strip():
                continue
            try:
                vector = await self.embedder.embed(piece.text)
            except ConvergeError as exc:
                LOGGER.warning(
                    "Skipping chunk %s:%d-%d: %s", ref, piece.start_line, piece.end_line, exc
                )
                stats.failed_chunks += 1
                continue
            embedded.append(
                IndexedChunk(
                    document_ref=ref,
                    text=piece.text,
                    embedding=vector,
                    start_line=piece.start_line,
                    end_line=piece.end_line,
                )
            )
        return embedded

    def persist(self) -> bool:
        """Write the live index; a failure is logged and the in-memory index stays."""
        try:
            self.store.save(self._index)
        except OSError as exc:
            LOGGER.error("Failed to save index to %s: %s", self.store.path, exc)
            return False
        return True

    async def search(self, query: str, top_k: int) -> List[SearchResult]:
        """Embed ``query`` and rank chunks of the snapshot current at call time."""
        snapshot = self._index
        if not snapshot.chunks:
            return []
        embedding = await self.embedder.embed(query)
        return search(snapshot, embedding, top_k)
