"""JSON persistence for the vault index."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from converge.errors import ParseError
from converge.models import IndexedChunk, VaultIndex
from converge.utils.files import write_text_replace

LOGGER = logging.getLogger(__name__)

Resolver = Callable[[str], Optional[Path]]


def _chunk_to_record(chunk: IndexedChunk) -> Dict[str, Any]:
    return {
        "filePath": chunk.document_ref,
        "text": chunk.text,
        "embedding": np.asarray(chunk.embedding, dtype="float32").tolist(),
        "startLine": chunk.start_line,
        "endLine": chunk.end_line,
    }


def _record_to_chunk(record: Dict[str, Any]) -> IndexedChunk:
    return IndexedChunk(
        document_ref=str(record["filePath"]),
        text=str(record["text"]),
        embedding=np.asarray(record["embedding"], dtype="float32"),
        start_line=int(record["startLine"]),
        end_line=int(record["endLine"]),
    )


class JsonIndexStore:
    """Persistence layer for chunk embeddings, one JSON document per vault."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def save(self, index: VaultIndex) -> None:
        """Overwrite the store with ``index``."""
        payload = {
            "chunks": [_chunk_to_record(chunk) for chunk in index.chunks],
            "lastUpdated": int(index.last_updated * 1000),
        }
        write_text_replace(self.path, json.dumps(payload))
        LOGGER.info("Saved %d chunks to %s", len(index.chunks), self.path)

    def load(self, resolve: Resolver) -> VaultIndex:
        """Read the store, dropping chunks whose note no longer resolves.

        A missing store yields an empty index.
        """
        if not self.exists():
            LOGGER.info("No index found at %s", self.path)
            return VaultIndex.empty()

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            records: List[Dict[str, Any]] = payload.get("chunks", [])
            last_updated = float(payload.get("lastUpdated", 0)) / 1000
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as exc:
            raise ParseError(f"Corrupt index file {self.path}: {exc}") from exc
        if not isinstance(records, list):
            raise ParseError(f"Corrupt index file {self.path}: chunks is not a list")

        chunks: List[IndexedChunk] = []
        dropped = 0
        for record in records:
            try:
                chunk = _record_to_chunk(record)
            except (KeyError, TypeError, ValueError) as exc:
                raise ParseError(f"Corrupt chunk record in {self.path}: {exc}") from exc
            if resolve(chunk.document_ref) is None:
                dropped += 1
                continue
            chunks.append(chunk)

        if dropped:
            LOGGER.debug("Dropped %d chunks of notes that no longer exist", dropped)
        LOGGER.info("Loaded %d chunks from %s", len(chunks), self.path)
        return VaultIndex(chunks=tuple(chunks), last_updated=last_updated)
