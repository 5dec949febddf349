"""Tests for text utility functions."""

from __future__ import annotations

import pytest

from converge.utils.text import chunk_text, clamp_overlap, estimate_tokens, truncate


class TestEstimateTokens:
    """Test estimate_tokens function."""

    def test_empty_text(self) -> None:
        assert estimate_tokens("") == 0

    def test_rounds_up(self) -> None:
        """Should count a partial group of four chars as one token."""
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2
        assert estimate_tokens("a" * 400) == 100


class TestClampOverlap:
    """Test clamp_overlap function."""

    def test_keeps_valid_overlap(self) -> None:
        assert clamp_overlap(500, 50) == 50

    def test_clamps_overlap_below_size(self) -> None:
        assert clamp_overlap(10, 10) == 9
        assert clamp_overlap(10, 100) == 9

    def test_negative_overlap(self) -> None:
        assert clamp_overlap(10, -3) == 0


class TestChunkText:
    """Test chunk_text function."""

    def test_chunk_empty_text(self) -> None:
        """Should produce no chunks for empty input."""
        assert chunk_text("", target_size=100, overlap=10) == []

    def test_chunk_short_text(self) -> None:
        """Should return single chunk covering every line."""
        text = "first line\nsecond line\nthird line"
        chunks = chunk_text(text, target_size=100, overlap=10)

        assert len(chunks) == 1
        assert chunks[0].text == text
        assert chunks[0].start_line == 0
        assert chunks[0].end_line == 2

    def test_chunk_overlap_windows(self) -> None:
        """Should seed each chunk with the trailing lines of the previous one."""
        text = "\n".join(["abcd"] * 10)  # one token per line
        chunks = chunk_text(text, target_size=4, overlap=2)

        ranges = [(chunk.start_line, chunk.end_line) for chunk in chunks]
        assert ranges == [(0, 3), (2, 5), (4, 7), (6, 9)]

    def test_chunk_without_overlap(self) -> None:
        """Should produce disjoint ranges when overlap is zero."""
        text = "\n".join(["abcd"] * 6)
        chunks = chunk_text(text, target_size=3, overlap=0)

        ranges = [(chunk.start_line, chunk.end_line) for chunk in chunks]
        assert ranges == [(0, 2), (3, 5)]

    def test_long_line_is_never_split(self) -> None:
        """Should keep an oversized line whole, after its overlap seed."""
        long_line = "x" * 200  # 50 tokens
        text = f"intro\n{long_line}\noutro"
        chunks = chunk_text(text, target_size=10, overlap=2)

        ranges = [(chunk.start_line, chunk.end_line) for chunk in chunks]
        assert ranges == [(0, 0), (0, 1), (2, 2)]
        assert chunks[1].text.split("\n") == ["intro", long_line]

    def test_long_line_after_full_buffer_keeps_overlap(self) -> None:
        """Should seed the full overlap even when the next line is oversized."""
        text = "\n".join(["abcd"] * 10 + ["x" * 36])  # ten 1-token lines, then 9 tokens
        chunks = chunk_text(text, target_size=10, overlap=5)

        ranges = [(chunk.start_line, chunk.end_line) for chunk in chunks]
        assert ranges == [(0, 9), (5, 10)]

    def test_covers_every_line(self) -> None:
        """Should cover every line index with increasing starts."""
        text = "\n".join(f"line number {i} with some words" for i in range(60))
        chunks = chunk_text(text, target_size=40, overlap=10)

        covered = set()
        for chunk in chunks:
            covered.update(range(chunk.start_line, chunk.end_line + 1))
        assert covered == set(range(60))

        starts = [chunk.start_line for chunk in chunks]
        ends = [chunk.end_line for chunk in chunks]
        assert starts == sorted(set(starts))
        assert ends == sorted(set(ends))

    def test_overlap_is_bounded(self) -> None:
        """Should never repeat more than the overlap budget."""
        lines = [f"entry {i} " + "w" * (i % 7) for i in range(80)]
        chunks = chunk_text("\n".join(lines), target_size=30, overlap=8)

        for previous, current in zip(chunks, chunks[1:]):
            shared = range(current.start_line, previous.end_line + 1)
            assert sum(estimate_tokens(lines[i]) for i in shared) <= 8

    def test_chunk_size_is_respected(self) -> None:
        """Should only pass the target size with the line that closed the previous chunk."""
        lines = [f"item {i} " + "z" * (i % 11) for i in range(100)]
        chunks = chunk_text("\n".join(lines), target_size=12, overlap=4)

        for chunk in chunks:
            chunk_lines = chunk.text.split("\n")
            assert sum(estimate_tokens(line) for line in chunk_lines[:-1]) <= 12

    def test_degenerate_overlap_still_progresses(self) -> None:
        """Should terminate when the overlap is configured at or above the size."""
        text = "\n".join(["abcd"] * 6)
        chunks = chunk_text(text, target_size=2, overlap=5)

        ranges = [(chunk.start_line, chunk.end_line) for chunk in chunks]
        assert ranges == [(0, 1), (1, 2), (2, 3), (3, 4), (4, 5)]

    def test_is_deterministic(self) -> None:
        """Should return identical chunks for identical input."""
        text = "\n".join(f"row {i}" for i in range(40))
        first = chunk_text(text, target_size=10, overlap=3)
        second = chunk_text(text, target_size=10, overlap=3)

        assert first == second

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            chunk_text("text", target_size=0, overlap=0)


class TestTruncate:
    """Test truncate function."""

    def test_truncate(self) -> None:
        assert truncate("abcdef", 3) == "abc"
        assert truncate("abc", 10) == "abc"
        assert truncate("abc", -1) == ""
