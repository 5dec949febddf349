"""Wiring of the Converge services from an ``AppConfig``."""

from __future__ import annotations

from dataclasses import dataclass

from converge.chat.client import CompletionClient, CompletionConfig
from converge.chat.orchestrator import ChatSession
from converge.config import AppConfig
from converge.discovery.engine import DiscoverySession
from converge.embedding.client import EmbeddingClient, EmbeddingConfig
from converge.index.indexer import IndexService
from converge.index.storage import JsonIndexStore
from converge.vault import Vault


@dataclass(slots=True)
class Services:
    config: AppConfig
    vault: Vault
    embedder: EmbeddingClient
    completion: CompletionClient
    index: IndexService

    def chat_session(self) -> ChatSession:
        return ChatSession(
            self.config, self.completion, vault=self.vault, index_service=self.index
        )

    def discovery_session(self) -> DiscoverySession:
        return DiscoverySession(
            self.vault,
            self.index,
            threshold=self.config.similarity_threshold,
            prefix_chars=self.config.discovery_prefix_chars,
            hub_folder=self.config.hub_folder,
        )

    async def aclose(self) -> None:
        await self.embedder.aclose()
        await self.completion.aclose()


def build_services(config: AppConfig, *, load_index: bool = True) -> Services:
    vault = Vault(config.vault_path)
    embedder = EmbeddingClient(EmbeddingConfig.from_app_config(config))
    completion = CompletionClient(CompletionConfig.from_app_config(config))
    store = JsonIndexStore(config.resolve_index_path())
    index = IndexService(
        vault,
        embedder,
        store,
        chunk_size=config.chunk_size,
        overlap=config.chunk_overlap,
    )
    if load_index:
        index.load()
    return Services(config=config, vault=vault, embedder=embedder, completion=completion, index=index)
