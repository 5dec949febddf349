"""Prompt assembly for grounded chat."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from converge.models import ChatMessage, SearchResult
from converge.utils.text import estimate_tokens

WARNING_RATIO = 0.80
DANGER_RATIO = 0.95


@dataclass(slots=True)
class TokenUsage:
    tokens: int
    max_tokens: int
    ratio: float
    level: str

    def describe(self) -> str:
        return f"~{self.tokens:,} / {self.max_tokens:,} tokens"


def build_system_prompt(
    system_prompt: str,
    *,
    user_name: str = "",
    context_documents: Sequence[Tuple[str, str]] = (),
    retrieved: Sequence[SearchResult] = (),
) -> str:
    """Base instruction, identity, manual context, then retrieved context.

    Manual notes come before retrieved chunks so the most explicit context
    is read first.
    """
    content = system_prompt
    if user_name:
        content += f"\n\nThe user's name is {user_name}."
    if context_documents:
        content += "\n\nContext from user's notes:"
        for name, text in context_documents:
            content += f"\n\n--- {name} ---\n{text}"
    if retrieved:
        content += "\n\nRelated excerpts found by semantic search:"
        for result in retrieved:
            chunk = result.chunk
            content += (
                f"\n\n--- {chunk.document_ref} (lines {chunk.start_line + 1}-{chunk.end_line + 1}) ---"
                f"\n{chunk.text}"
            )
    return content


def build_messages(system_content: str, history: Sequence[ChatMessage]) -> List[ChatMessage]:
    return [ChatMessage(role="system", content=system_content), *history]


def measure(messages: Sequence[ChatMessage], max_tokens: int) -> TokenUsage:
    """Estimate prompt size against ``max_tokens``; advisory only."""
    tokens = estimate_tokens("".join(message.content for message in messages))
    ratio = tokens / max_tokens if max_tokens > 0 else 0.0
    if ratio >= DANGER_RATIO:
        level = "danger"
    elif ratio >= WARNING_RATIO:
        level = "warning"
    else:
        level = "ok"
    return TokenUsage(tokens=tokens, max_tokens=max_tokens, ratio=ratio, level=level)
