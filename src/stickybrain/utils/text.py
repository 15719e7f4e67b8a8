"""Text helpers for paragraph splitting and thought-boundary detection."""

from __future__ import annotations

import re
from typing import List

TERMINATORS = frozenset(".!?\n")

_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n+")
# RTF line continuations survive extraction as a backslash before a newline.
_CONTINUATION = re.compile(r"\\+(?=[ \t]*(?:\n|$))")


def strip_continuations(text: str) -> str:
    """Remove stray continuation backslashes left by the RTF extractor."""
    return _CONTINUATION.sub("", text)


def last_meaningful_char(text: str) -> str:
    """Return the final character once trailing spaces and tabs are dropped.

    Newlines are kept: finishing a line is itself a thought boundary.
    """
    trimmed = strip_continuations(text).rstrip(" \t\r")
    return trimmed[-1] if trimmed else ""


def ends_thought(text: str) -> bool:
    return last_meaningful_char(text) in TERMINATORS


def split_into_paragraphs(text: str) -> List[str]:
    """Split text on blank lines, dropping empty paragraphs."""
    cleaned = strip_continuations(text)
    return [part.strip() for part in _PARAGRAPH_BREAK.split(cleaned) if part.strip()]


def last_paragraph(text: str) -> str:
    parts = split_into_paragraphs(text)
    return parts[-1] if parts else text.strip()


def first_line(text: str, *, max_chars: int = 120) -> str:
    """First non-empty line, ellipsised past ``max_chars``."""
    for line in text.splitlines():
        line = line.strip()
        if line:
            if len(line) > max_chars:
                return line[: max_chars - 3] + "..."
            return line
    return ""


def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3].rstrip() + "..."


def first_sentence(text: str) -> str:
    match = re.search(r"^.*?[.!?](?=\s|$)", text.strip(), flags=re.DOTALL)
    return match.group(0).strip() if match else text.strip()
