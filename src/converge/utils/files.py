"""Utility helpers for working with files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

NOTE_SUFFIX = ".md"


def iter_note_paths(root: Path) -> Iterator[Path]:
    """Yield Markdown notes under ``root``, skipping hidden folders."""
    for item in sorted(root.iterdir()):
        if item.name.startswith("."):
            continue
        if item.is_dir():
            yield from iter_note_paths(item)
        elif item.is_file() and item.suffix.lower() == NOTE_SUFFIX:
            yield item


def write_text_replace(path: Path, content: str) -> None:
    """Overwrite ``path`` through a sibling temp file so readers never see half a file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(content, encoding="utf-8")
    os.replace(tmp_path, path)
