"""Core Converge data models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Literal

import numpy as np

Role = Literal["user", "assistant", "system"]


@dataclass(slots=True)
class TextChunk:
    """Contiguous line range of a note produced by the chunker.

    ``start_line`` and ``end_line`` are 0-based and inclusive.
    """

    text: str
    start_line: int
    end_line: int


@dataclass(slots=True)
class IndexedChunk:
    """Chunk of note text paired with its embedding.

    ``document_ref`` is the vault-relative path of the owning note, never a
    handle to the note itself.
    """

    document_ref: str
    text: str
    embedding: np.ndarray
    start_line: int
    end_line: int


@dataclass(frozen=True, slots=True)
class VaultIndex:
    """Immutable snapshot of every embedded chunk in the vault."""

    chunks: tuple[IndexedChunk, ...] = ()
    last_updated: float = 0.0

    @classmethod
    def empty(cls) -> "VaultIndex":
        return cls(chunks=(), last_updated=0.0)

    @classmethod
    def build(cls, chunks: List[IndexedChunk]) -> "VaultIndex":
        return cls(chunks=tuple(chunks), last_updated=time.time())

    def __len__(self) -> int:
        return len(self.chunks)

    def document_refs(self) -> List[str]:
        """Distinct document refs in first-seen order."""
        return list(dict.fromkeys(chunk.document_ref for chunk in self.chunks))


@dataclass(slots=True)
class SearchResult:
    chunk: IndexedChunk
    score: float


@dataclass(slots=True)
class MatchingChunk:
    text: str
    start_line: int
    end_line: int
    score: float


@dataclass(slots=True)
class SimilarDocument:
    """Related-note candidate aggregated over its best chunks."""

    document_ref: str
    score: float
    selected: bool = False
    matching_chunks: List[MatchingChunk] = field(default_factory=list)


@dataclass(slots=True)
class ChatMessage:
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}
