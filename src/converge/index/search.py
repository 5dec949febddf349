"""Brute-force cosine similarity search over a vault index."""

from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np

from converge.models import (
    IndexedChunk,
    MatchingChunk,
    SearchResult,
    SimilarDocument,
    VaultIndex,
)

MAX_MATCHING_CHUNKS = 5


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine similarity in [-1, 1]; 0.0 for mismatched lengths or degenerate vectors."""
    left = np.asarray(a, dtype="float64")
    right = np.asarray(b, dtype="float64")
    if left.shape != right.shape or left.size == 0:
        return 0.0
    denominator = np.linalg.norm(left) * np.linalg.norm(right)
    if denominator == 0 or not np.isfinite(denominator):
        return 0.0
    score = float(np.dot(left, right) / denominator)
    if not np.isfinite(score):
        return 0.0
    return max(-1.0, min(1.0, score))


def score_chunks(chunks: Sequence[IndexedChunk], query: np.ndarray) -> np.ndarray:
    """Score every chunk against ``query`` in one pass.

    Chunks whose dimensionality differs from the query score 0.
    """
    query = np.asarray(query, dtype="float64")
    scores = np.zeros(len(chunks), dtype="float64")
    if not chunks or query.ndim != 1 or query.size == 0:
        return scores

    query_norm = np.linalg.norm(query)
    if query_norm == 0 or not np.isfinite(query_norm):
        return scores

    positions = [i for i, chunk in enumerate(chunks) if np.shape(chunk.embedding) == query.shape]
    if not positions:
        return scores

    matrix = np.vstack([np.asarray(chunks[i].embedding, dtype="float64") for i in positions])
    norms = np.linalg.norm(matrix, axis=1) * query_norm
    with np.errstate(divide="ignore", invalid="ignore"):
        matched = (matrix @ query) / norms
    matched = np.where(np.isfinite(matched), matched, 0.0)
    scores[positions] = np.clip(matched, -1.0, 1.0)
    return scores


def search(index: VaultIndex, query_embedding: np.ndarray, top_k: int) -> List[SearchResult]:
    """Top ``top_k`` chunks by cosine similarity, ties kept in index order."""
    if top_k <= 0 or not index.chunks:
        return []
    scores = score_chunks(index.chunks, query_embedding)
    order = np.argsort(-scores, kind="stable")[:top_k]
    return [SearchResult(chunk=index.chunks[i], score=float(scores[i])) for i in order]


def find_similar(
    index: VaultIndex,
    query_document: str,
    query_embedding: np.ndarray,
    *,
    threshold: float,
    max_matches: int = MAX_MATCHING_CHUNKS,
) -> List[SimilarDocument]:
    """Rank other notes by the mean similarity of their chunks to ``query_embedding``."""
    scores = score_chunks(index.chunks, query_embedding)
    groups: Dict[str, List[MatchingChunk]] = {}
    for chunk, score in zip(index.chunks, scores):
        if chunk.document_ref == query_document:
            continue
        groups.setdefault(chunk.document_ref, []).append(
            MatchingChunk(
                text=chunk.text,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                score=float(score),
            )
        )

    results: List[SimilarDocument] = []
    for ref, matches in groups.items():
        mean = sum(match.score for match in matches) / len(matches)
        best = sorted(matches, key=lambda match: match.score, reverse=True)[:max_matches]
        results.append(
            SimilarDocument(
                document_ref=ref,
                score=mean,
                selected=mean >= threshold,
                matching_chunks=best,
            )
        )
    results.sort(key=lambda result: result.score, reverse=True)
    return results


def apply_threshold(results: List[SimilarDocument], threshold: float) -> List[SimilarDocument]:
    """Recompute ``selected`` from the stored scores; nothing is rescored."""
    for result in results:
        result.selected = result.score >= threshold
    return results


def filter_by_threshold(results: Sequence[SimilarDocument], threshold: float) -> List[SimilarDocument]:
    return [result for result in results if result.score >= threshold]
