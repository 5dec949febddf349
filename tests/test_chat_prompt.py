"""Tests for prompt assembly."""

from __future__ import annotations

from converge.chat.prompt import build_messages, build_system_prompt, measure
from converge.models import ChatMessage, SearchResult
from conftest import make_chunk


class TestBuildSystemPrompt:
    """Test build_system_prompt function."""

    def test_base_prompt_only(self) -> None:
        assert build_system_prompt("You are helpful.") == "You are helpful."

    def test_user_name(self) -> None:
        prompt = build_system_prompt("Base.", user_name="Sam")

        assert prompt == "Base.\n\nThe user's name is Sam."

    def test_section_order(self) -> None:
        """Manual notes come before semantic search excerpts."""
        retrieved = [
            SearchResult(chunk=make_chunk("projects/plan.md", [1.0], text="step one", start=4, end=6), score=0.9)
        ]

        prompt = build_system_prompt(
            "Base.",
            user_name="Sam",
            context_documents=[("Ideas", "idea body")],
            retrieved=retrieved,
        )

        assert prompt == (
            "Base."
            "\n\nThe user's name is Sam."
            "\n\nContext from user's notes:"
            "\n\n--- Ideas ---\nidea body"
            "\n\nRelated excerpts found by semantic search:"
            "\n\n--- projects/plan.md (lines 5-7) ---\nstep one"
        )

    def test_no_retrieved_section_when_empty(self) -> None:
        prompt = build_system_prompt("Base.", context_documents=[("Ideas", "idea body")])

        assert "semantic search" not in prompt
        assert prompt.endswith("--- Ideas ---\nidea body")


class TestBuildMessages:
    """Test build_messages function."""

    def test_system_message_first(self) -> None:
        history = [ChatMessage("user", "hi"), ChatMessage("assistant", "hello")]

        messages = build_messages("system text", history)

        assert [m.role for m in messages] == ["system", "user", "assistant"]
        assert messages[0].content == "system text"


class TestMeasure:
    """Test measure function."""

    def test_levels(self) -> None:
        def usage(chars: int):
            return measure([ChatMessage("user", "x" * chars)], max_tokens=100)

        assert usage(4 * 50).level == "ok"
        assert usage(4 * 80).level == "warning"
        assert usage(4 * 94).level == "warning"
        assert usage(4 * 95).level == "danger"
        assert usage(4 * 200).level == "danger"

    def test_counts_all_messages(self) -> None:
        result = measure([ChatMessage("system", "abcd"), ChatMessage("user", "efgh")], max_tokens=1000)

        assert result.tokens == 2
        assert result.ratio == 0.002

    def test_describe(self) -> None:
        result = measure([ChatMessage("user", "x" * 4 * 1234)], max_tokens=100_000)

        assert result.describe() == "~1,234 / 100,000 tokens"

    def test_zero_max_tokens(self) -> None:
        assert measure([ChatMessage("user", "x")], max_tokens=0).level == "ok"
