"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from converge.utils.text import clamp_overlap
from converge.vault import DATA_DIR_NAME

DEFAULT_CHAT_ENDPOINT = "https://api.openai.com/v1/chat/completions"
DEFAULT_CHAT_MODEL = "gpt-4o-mini"
DEFAULT_EMBEDDING_ENDPOINT = "https://api.openai.com/v1/embeddings"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly and helpful assistant. Be warm and personable in your responses "
    "while remaining professional. Address the user by name when appropriate. Answer "
    "questions based on the provided context from the user's notes, and feel free to "
    "offer additional insights or suggestions that might be helpful."
)
INDEX_FILE_NAME = "index.json"


@dataclass(slots=True)
class AppConfig:
    vault_path: Path = Path(".")
    index_path: Path | None = None
    api_key: str = ""
    chat_endpoint: str = DEFAULT_CHAT_ENDPOINT
    chat_model: str = DEFAULT_CHAT_MODEL
    embedding_endpoint: str = DEFAULT_EMBEDDING_ENDPOINT
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    user_name: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_tokens: int = 100_000
    chunk_size: int = 500
    chunk_overlap: int = 50
    top_k: int = 5
    semantic_search: bool = True
    similarity_threshold: float = 0.7
    discovery_prefix_chars: int = 2000
    hub_folder: str = "Hubs"

    def __post_init__(self) -> None:
        self.vault_path = Path(self.vault_path)
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1 token")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        self.chunk_overlap = clamp_overlap(self.chunk_size, self.chunk_overlap)

    def resolve_index_path(self) -> Path:
        if self.index_path is not None:
            return Path(self.index_path)
        return self.vault_path / DATA_DIR_NAME / INDEX_FILE_NAME
