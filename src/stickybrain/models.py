"""Core StickyBrain data models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List


@dataclass(slots=True)
class DocumentSnapshot:
    """Last text seen for one watched document."""

    path: Path
    last_text: str


@dataclass(frozen=True, slots=True)
class TriggerEvent:
    """A finished thought, ready to be sent to the pipeline."""

    text: str
    source_path: Path
    timestamp: float = field(default_factory=time.time)


@dataclass(slots=True)
class RecordMetadata:
    """Metadata stored alongside each vector."""

    title: str
    content: str
    source_path: str
    is_title_record: bool = False
    paragraph_index: int | None = None
    preview: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to scalar values, dropping unset optional fields."""
        data: Dict[str, Any] = {
            "title": self.title,
            "content": self.content,
            "source_path": self.source_path,
            "is_title_record": self.is_title_record,
        }
        if self.paragraph_index is not None:
            data["paragraph_index"] = self.paragraph_index
        if self.preview is not None:
            data["preview"] = self.preview
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> RecordMetadata:
        data = data or {}
        paragraph_index = data.get("paragraph_index")
        return cls(
            title=str(data.get("title") or "unknown"),
            content=str(data.get("content") or ""),
            source_path=str(data.get("source_path") or ""),
            is_title_record=bool(data.get("is_title_record", False)),
            paragraph_index=int(paragraph_index) if paragraph_index is not None else None,
            preview=data.get("preview"),
        )


@dataclass(slots=True)
class VectorRecord:
    """One (id, embedding, metadata) triple held by a vector index."""

    id: str
    embedding: List[float]
    metadata: RecordMetadata


@dataclass(slots=True)
class IndexHit:
    """A single nearest-neighbour match, closest first."""

    id: str
    distance: float
    metadata: RecordMetadata
