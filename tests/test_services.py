"""Tests for service wiring."""

from __future__ import annotations

from pathlib import Path

import pytest

from converge.chat.client import CompletionClient
from converge.config import AppConfig
from converge.embedding.client import EmbeddingClient
from converge.index.storage import JsonIndexStore
from converge.services import build_services
from conftest import make_chunk, make_index


class TestBuildServices:
    """Test build_services function."""

    def test_wires_clients_from_config(self, vault_dir: Path) -> None:
        config = AppConfig(
            vault_path=vault_dir,
            api_key="sk-test",
            chat_model="chat-x",
            embedding_model="embed-y",
            chunk_size=200,
            chunk_overlap=20,
        )

        services = build_services(config)

        assert isinstance(services.embedder, EmbeddingClient)
        assert isinstance(services.completion, CompletionClient)
        assert services.completion.config.model_name == "chat-x"
        assert services.embedder.config.model_name == "embed-y"
        assert services.index.chunk_size == 200
        assert services.index.overlap == 20
        assert services.index.store.path == vault_dir / ".converge" / "index.json"

    def test_loads_persisted_index(self, vault_dir: Path) -> None:
        config = AppConfig(vault_path=vault_dir)
        JsonIndexStore(config.resolve_index_path()).save(make_index([make_chunk("alpha.md", [1.0])]))

        assert len(build_services(config).index.index) == 1
        assert len(build_services(config, load_index=False).index.index) == 0

    def test_sessions_use_config(self, vault_dir: Path) -> None:
        config = AppConfig(vault_path=vault_dir, similarity_threshold=0.4, hub_folder="Maps")
        services = build_services(config, load_index=False)

        discovery = services.discovery_session()
        chat = services.chat_session()

        assert discovery.threshold == 0.4
        assert discovery.hub_folder == "Maps"
        assert chat.index_service is services.index
        assert chat.vault is services.vault

    @pytest.mark.asyncio
    async def test_aclose(self, vault_dir: Path) -> None:
        services = build_services(AppConfig(vault_path=vault_dir), load_index=False)
        http = services.embedder.client

        await services.aclose()

        assert http.is_closed
