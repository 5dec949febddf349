"""Retrieval-augmented chat session."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Callable, List, Optional, Tuple

from converge.chat.client import CompletionClient
from converge.chat.prompt import TokenUsage, build_messages, build_system_prompt, measure
from converge.config import AppConfig
from converge.errors import ConcurrencyRejected, ConfigurationError, ConvergeError
from converge.index.indexer import IndexService
from converge.models import ChatMessage, SearchResult
from converge.vault import Vault

LOGGER = logging.getLogger(__name__)


class ChatSession:
    """One conversation grounded in manually picked notes and semantic search.

    The user message is appended as soon as a send starts and removed again if
    the completion fails or the stream is abandoned, so the history only ever
    holds complete exchanges.
    """

    def __init__(
        self,
        config: AppConfig,
        completion: CompletionClient,
        *,
        vault: Vault | None = None,
        index_service: IndexService | None = None,
        streaming: bool = True,
    ) -> None:
        self.config = config
        self.completion = completion
        self.vault = vault
        self.index_service = index_service
        self.streaming = streaming
        self.messages: List[ChatMessage] = []
        self.context_documents: List[str] = []
        self.last_retrieved: List[SearchResult] = []
        self._sending = False

    @property
    def is_sending(self) -> bool:
        return self._sending

    def add_context(self, ref: str) -> bool:
        """Attach a note as manual context; returns False if it was already attached."""
        if self.vault is None or self.vault.resolve(ref) is None:
            raise FileNotFoundError(f"Note not found: {ref}")
        if ref in self.context_documents:
            return False
        self.context_documents.append(ref)
        return True

    def remove_context(self, ref: str) -> None:
        if ref in self.context_documents:
            self.context_documents.remove(ref)

    def clear(self) -> None:
        if self._sending:
            raise ConcurrencyRejected("Cannot clear the chat while a message is being sent")
        self.messages = []
        self.last_retrieved = []

    def _read_context_documents(self) -> List[Tuple[str, str]]:
        documents: List[Tuple[str, str]] = []
        if self.vault is None:
            return documents
        for ref in self.context_documents:
            try:
                documents.append((self.vault.basename(ref), self.vault.read(ref)))
            except OSError as exc:
                LOGGER.warning("Context note %s is unavailable: %s", ref, exc)
        return documents

    def assemble(self, retrieved: List[SearchResult] | None = None) -> List[ChatMessage]:
        system_content = build_system_prompt(
            self.config.system_prompt,
            user_name=self.config.user_name,
            context_documents=self._read_context_documents(),
            retrieved=self.last_retrieved if retrieved is None else retrieved,
        )
        return build_messages(system_content, self.messages)

    def token_usage(self) -> TokenUsage:
        return measure(self.assemble(), self.config.max_tokens)

    async def _retrieve(self, query: str) -> List[SearchResult]:
        service = self.index_service
        if not self.config.semantic_search or service is None or not service.index.chunks:
            return []
        try:
            return await service.search(query, self.config.top_k)
        except Exception as exc:
            LOGGER.warning("Semantic search failed, continuing without it: %s", exc)
            return []

    def check_can_send(self, text: str) -> str:
        query = text.strip()
        if not query:
            raise ValueError("Message is empty")
        if self._sending:
            raise ConcurrencyRejected("A message is already being sent")
        if not self.config.api_key:
            raise ConfigurationError("Please configure your API key")
        return query

    def _rollback(self, message: ChatMessage) -> None:
        for position in range(len(self.messages) - 1, -1, -1):
            if self.messages[position] is message:
                del self.messages[position]
                return

    async def _reply(self, messages: List[ChatMessage], streaming: bool) -> AsyncIterator[str]:
        if streaming:
            async for delta in self.completion.stream(messages):
                yield delta
        else:
            yield await self.completion.complete(messages)

    async def stream(self, text: str, *, streaming: bool | None = None) -> AsyncIterator[str]:
        """Send ``text`` and yield the reply as it arrives.

        Deltas are yielded strictly in arrival order. The assistant message is
        committed only once the reply is complete. ``streaming`` overrides the
        session default; when false the whole reply arrives as one delta.
        """
        if streaming is None:
            streaming = self.streaming
        query = self.check_can_send(text)
        self._sending = True
        user_message = ChatMessage(role="user", content=query)
        self.messages.append(user_message)
        committed = False
        try:
            self.last_retrieved = await self._retrieve(query)
            if self.last_retrieved:
                LOGGER.info("Adding %d retrieved chunks to the prompt", len(self.last_retrieved))
            parts: List[str] = []
            async for delta in self._reply(self.assemble(), streaming):
                parts.append(delta)
                yield delta
            self.messages.append(ChatMessage(role="assistant", content="".join(parts)))
            committed = True
        except ConvergeError as exc:
            LOGGER.error("Chat completion failed: %s", exc)
            raise
        finally:
            if not committed:
                self._rollback(user_message)
            self._sending = False

    async def send(
        self,
        text: str,
        on_delta: Optional[Callable[[str], None]] = None,
        *,
        streaming: bool | None = None,
    ) -> str:
        """Send ``text`` and return the full reply, reporting the growing buffer to ``on_delta``."""
        buffer = ""
        async for delta in self.stream(text, streaming=streaming):
            buffer += delta
            if on_delta is not None:
                on_delta(buffer)
        return buffer
