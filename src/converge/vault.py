"""Filesystem-backed note store."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import List, Optional

from converge.utils.files import iter_note_paths

LOGGER = logging.getLogger(__name__)

DATA_DIR_NAME = ".converge"


class Vault:
    """A directory of Markdown notes addressed by vault-relative POSIX paths."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser().resolve()

    @property
    def data_dir(self) -> Path:
        return self.root / DATA_DIR_NAME

    def list_documents(self) -> List[str]:
        if not self.root.is_dir():
            LOGGER.warning("Vault folder not found: %s", self.root)
            return []
        return [self.ref_for(path) for path in iter_note_paths(self.root)]

    def ref_for(self, path: Path) -> str:
        return Path(path).resolve().relative_to(self.root).as_posix()

    def resolve(self, ref: str) -> Optional[Path]:
        """Map a ref back to a live note, or ``None`` when it no longer exists."""
        candidate = (self.root / PurePosixPath(ref)).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            return None
        if not candidate.is_file():
            return None
        return candidate

    def read(self, ref: str) -> str:
        path = self.resolve(ref)
        if path is None:
            raise FileNotFoundError(f"Note not found: {ref}")
        return path.read_text(encoding="utf-8", errors="replace")

    def write(self, ref: str, content: str) -> Path:
        path = (self.root / PurePosixPath(ref)).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Note path escapes the vault: {ref}")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    @staticmethod
    def basename(ref: str) -> str:
        return PurePosixPath(ref).stem
