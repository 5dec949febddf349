"""Related-note discovery and hub note synthesis."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import List, Sequence, Tuple

from converge.index.indexer import IndexService
from converge.index.search import apply_threshold, filter_by_threshold, find_similar
from converge.models import SimilarDocument
from converge.utils.text import truncate
from converge.vault import Vault

LOGGER = logging.getLogger(__name__)

MANUAL_SCORE = 1.0


def format_hub_document(source_ref: str, selected: Sequence[SimilarDocument]) -> str:
    """Render a hub note linking ``source_ref`` to the selected related notes."""
    source = Vault.basename(source_ref)
    lines = [f"# {source} hub", "", f"Source: [[{source}]]", "", "## Related notes", ""]
    for document in selected:
        lines.append(f"- [[{Vault.basename(document.document_ref)}]] ({document.score:.2f})")
    return "\n".join(lines) + "\n"


class DiscoverySession:
    """Related notes for one reference note.

    Scores are computed once per ``discover`` call; changing the threshold only
    re-filters them.
    """

    def __init__(
        self,
        vault: Vault,
        index_service: IndexService,
        *,
        threshold: float = 0.7,
        prefix_chars: int = 2000,
        hub_folder: str = "Hubs",
    ) -> None:
        self.vault = vault
        self.index_service = index_service
        self.prefix_chars = prefix_chars
        self.hub_folder = hub_folder
        self.threshold = self._validate(threshold)
        self.source_ref: str | None = None
        self.results: List[SimilarDocument] = []

    @staticmethod
    def _validate(threshold: float) -> float:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("Threshold must be between 0 and 1")
        return threshold

    async def discover(self, document_ref: str) -> List[SimilarDocument]:
        """Rank every other indexed note against the opening of ``document_ref``."""
        content = self.vault.read(document_ref)
        snapshot = self.index_service.index
        query = truncate(content, self.prefix_chars)
        if not query.strip():
            raise ValueError(f"Note is empty: {document_ref}")

        embedding = await self.index_service.embedder.embed(query)
        self.source_ref = document_ref
        self.results = find_similar(snapshot, document_ref, embedding, threshold=self.threshold)
        LOGGER.info(
            "Found %d candidate notes for %s (%d above %.2f)",
            len(self.results),
            document_ref,
            len(self.visible()),
            self.threshold,
        )
        return self.results

    def set_threshold(self, threshold: float) -> List[SimilarDocument]:
        self.threshold = self._validate(threshold)
        apply_threshold(self.results, self.threshold)
        return self.visible()

    def visible(self) -> List[SimilarDocument]:
        return filter_by_threshold(self.results, self.threshold)

    def selected(self) -> List[SimilarDocument]:
        return [result for result in self.visible() if result.selected]

    def add_manual(self, document_ref: str) -> bool:
        """Insert a hand-picked note at the top; returns False for duplicates."""
        if self.vault.resolve(document_ref) is None:
            raise FileNotFoundError(f"Note not found: {document_ref}")
        if document_ref == self.source_ref:
            return False
        if any(result.document_ref == document_ref for result in self.results):
            return False
        self.results.insert(
            0, SimilarDocument(document_ref=document_ref, score=MANUAL_SCORE, selected=True)
        )
        return True

    def toggle(self, document_ref: str, selected: bool) -> None:
        for result in self.results:
            if result.document_ref == document_ref:
                result.selected = selected
                return
        raise KeyError(document_ref)

    def build_hub(self) -> Tuple[str, str]:
        """Return ``(hub_ref, content)`` for the current selection."""
        if self.source_ref is None:
            raise ValueError("Run discovery before building a hub note")
        stem = Vault.basename(self.source_ref)
        hub_ref = str(PurePosixPath(self.hub_folder) / f"{stem} hub.md")
        return hub_ref, format_hub_document(self.source_ref, self.selected())

    def create_hub(self) -> str:
        hub_ref, content = self.build_hub()
        self.vault.write(hub_ref, content)
        LOGGER.info("Created hub note %s", hub_ref)
        return hub_ref
