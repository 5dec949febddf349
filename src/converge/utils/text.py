"""Text helpers including simple token-aware chunking."""

from __future__ import annotations

import math
from typing import List, Tuple

from converge.models import TextChunk

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Approximate the token count of ``text`` (~4 chars per token for English)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def clamp_overlap(target_size: int, overlap: int) -> int:
    """Keep the overlap strictly below the chunk size so chunking always advances."""
    return max(0, min(overlap, target_size - 1))


def _close(buffer: List[Tuple[int, str]]) -> TextChunk:
    return TextChunk(
        text="\n".join(line for _, line in buffer),
        start_line=buffer[0][0],
        end_line=buffer[-1][0],
    )


def _overlap_window(buffer: List[Tuple[int, str]], overlap: int) -> List[Tuple[int, str]]:
    """Trailing lines of ``buffer`` whose estimated tokens fit in ``overlap``."""
    window: List[Tuple[int, str]] = []
    used = 0
    for index in range(len(buffer) - 1, -1, -1):
        line_tokens = estimate_tokens(buffer[index][1])
        if used + line_tokens > overlap:
            break
        window.insert(0, buffer[index])
        used += line_tokens
    return window


def chunk_text(text: str, *, target_size: int = 500, overlap: int = 50) -> List[TextChunk]:
    """Split text into overlapping, line-aligned chunks of roughly ``target_size`` tokens.

    Lines are never split, so a line larger than ``target_size`` still lands in
    a single chunk. Each new chunk is seeded with the trailing lines of the
    previous one, up to ``overlap`` estimated tokens; the seed plus the line
    that closed the previous chunk may exceed ``target_size``. ``overlap`` is
    clamped below ``target_size``.
    """
    if target_size < 1:
        raise ValueError("target_size must be a positive number of tokens")
    if not text:
        return []

    overlap = clamp_overlap(target_size, overlap)
    chunks: List[TextChunk] = []
    buffer: List[Tuple[int, str]] = []
    buffer_tokens = 0

    for line_number, line in enumerate(text.split("\n")):
        line_tokens = estimate_tokens(line)
        if buffer and buffer_tokens + line_tokens > target_size:
            chunks.append(_close(buffer))
            buffer = _overlap_window(buffer, overlap)
            buffer_tokens = sum(estimate_tokens(seed) for _, seed in buffer)
        buffer.append((line_number, line))
        buffer_tokens += line_tokens

    if buffer:
        chunks.append(_close(buffer))
    return chunks


def truncate(text: str, limit: int) -> str:
    """Return at most ``limit`` leading characters of ``text``."""
    return text[: max(limit, 0)]
