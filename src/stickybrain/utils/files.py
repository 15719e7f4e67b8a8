"""Utility helpers for working with note files."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Iterator

RTF_BODY = "TXT.rtf"
PLAIN_SUFFIXES = (".txt", ".md")


def is_rtfd_bundle(path: Path) -> bool:
    return path.is_dir() and (path.name.endswith(".rtfd") or ".rtfd.sb-" in path.name)


def document_root(path: Path) -> Path:
    """Return the path a document is known by.

    ``Note.rtfd/TXT.rtf`` is stored and excluded under its ``Note.rtfd``
    bundle; plain files are their own root. The result is absolute so the
    indexed and watched spellings of one note compare equal.
    """
    path = Path(path).resolve()
    if path.name == RTF_BODY:
        return path.parent
    return path


def iter_note_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield note documents (RTFD bundles, .txt, .md), descending into directories."""
    for item in inputs:
        item = Path(item)
        if is_rtfd_bundle(item):
            yield item
        elif item.is_dir():
            yield from iter_note_paths(sorted(item.iterdir()))
        elif item.is_file() and item.suffix.lower() in PLAIN_SUFFIXES:
            yield item


def iter_watch_targets(root: Path) -> Iterator[Path]:
    """Yield the concrete files whose modification marks a note change."""
    for note in iter_note_paths([root]):
        yield note / RTF_BODY if is_rtfd_bundle(note) else note


def record_prefix(path: Path) -> str:
    """Stable, unique id prefix for the records of one document."""
    root = document_root(path)
    digest = hashlib.sha1(str(root).encode("utf-8")).hexdigest()[:10]
    stem = root.name.split(".rtfd")[0] if ".rtfd" in root.name else root.stem
    return f"{stem}-{digest}"
