"""Note loading and paragraph chunking.

Stickies keeps each note as an ``.rtfd`` bundle whose text lives in
``TXT.rtf``. The RTF is reduced to plain text with a small regex stripper:
enough for the sticky-note subset of RTF, not a general converter.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator

from stickybrain.errors import ExtractionError
from stickybrain.models import RecordMetadata
from stickybrain.utils.files import RTF_BODY, document_root, is_rtfd_bundle, record_prefix
from stickybrain.utils.text import first_line, split_into_paragraphs, truncate

LOGGER = logging.getLogger(__name__)

TITLE_PREVIEW_CHARS = 1000

# Header groups whose text is not part of the note (font and colour tables).
_HEADER_GROUP = re.compile(
    r"\{\\(?:\*\\)?(?:fonttbl|colortbl|expandedcolortbl|stylesheet|info)[^{}]*(?:\{[^{}]*\}[^{}]*)*\}"
)
_HEX_ESCAPE = re.compile(r"\\'([0-9a-fA-F]{2})")
_PARAGRAPH = re.compile(r"\\pard?\b ?")
_CONTROL_WORD = re.compile(r"\\[a-zA-Z]+-?\d* ?")
_GROUP_BRACES = re.compile(r"[{}]")
_HORIZONTAL_SPACE = re.compile(r"[ \t\r]+")


def strip_rtf(raw: str) -> str:
    """Convert RTF markup into plain text, keeping paragraph newlines."""
    text = _HEADER_GROUP.sub("", raw)
    text = _HEX_ESCAPE.sub(lambda match: chr(int(match.group(1), 16)), text)
    text = _PARAGRAPH.sub("\n", text)
    text = _CONTROL_WORD.sub("", text)
    text = _GROUP_BRACES.sub("", text)
    text = _HORIZONTAL_SPACE.sub(" ", text)
    return "\n".join(line.strip(" ") for line in text.split("\n")).lstrip()


def extract_text(path: Path) -> str:
    """Return the plain text of a note file or RTFD bundle.

    Raises:
        ExtractionError: if the document cannot be read.
    """
    path = Path(path)
    if is_rtfd_bundle(path):
        path = path / RTF_BODY
    try:
        raw = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ExtractionError(f"Could not read {path}: {exc}") from exc
    if path.suffix.lower() == ".rtf":
        return strip_rtf(raw)
    return raw


def note_title(path: Path, text: str) -> str:
    """First non-empty line of the note, or the bundle/file name."""
    root = document_root(path)
    fallback = root.name.split(".rtfd")[0] if ".rtfd" in root.name else root.stem
    return first_line(text) or fallback


def build_records(path: Path, text: str | None = None) -> Iterator[tuple[str, RecordMetadata]]:
    """Produce ``(id, metadata)`` pairs for one note: a title record, then paragraphs.

    The embedded text of every record is ``metadata.content``.
    """
    root = document_root(path)
    if text is None:
        text = extract_text(root)
    paragraphs = split_into_paragraphs(text)
    if not paragraphs:
        LOGGER.debug("No text extracted from %s", root)
        return

    prefix = record_prefix(root)
    title = note_title(root, text)
    title_text = f"{truncate(title, 100)} (title)"
    yield (
        f"{prefix}_title",
        RecordMetadata(
            title=title,
            content=title_text,
            source_path=str(root),
            is_title_record=True,
            preview=text[:TITLE_PREVIEW_CHARS],
        ),
    )
    for index, paragraph in enumerate(paragraphs):
        yield (
            f"{prefix}_{index}",
            RecordMetadata(
                title=title,
                content=paragraph,
                source_path=str(root),
                paragraph_index=index,
            ),
        )

