"""Note indexing pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from stickybrain.embedding.encoder import EmbeddingService
from stickybrain.errors import ExtractionError
from stickybrain.index.base import VectorIndex
from stickybrain.ingestion.rtf_loader import build_records
from stickybrain.models import RecordMetadata
from stickybrain.utils.files import iter_note_paths

LOGGER = logging.getLogger(__name__)

BATCH_SIZE = 100


@dataclass(slots=True)
class IndexStats:
    notes: int = 0
    records: int = 0
    failed: int = 0
    processed_files: list[Path] = field(default_factory=list)


class Indexer:
    """Chunks notes into title + paragraph records and upserts them in batches."""

    def __init__(
        self,
        embedder: EmbeddingService,
        index: VectorIndex,
        *,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.batch_size = batch_size

    def index_paths(self, paths: Sequence[Path]) -> IndexStats:
        """Index every note found under the given paths."""
        stats = IndexStats()
        pending: list[tuple[str, RecordMetadata]] = []

        for path in iter_note_paths(paths):
            try:
                records = list(build_records(path))
            except ExtractionError as exc:
                LOGGER.error("Failed to process %s: %s", path, exc)
                stats.failed += 1
                continue
            LOGGER.debug("Processed %s: %d records", path, len(records))
            stats.notes += 1
            stats.processed_files.append(path)
            pending.extend(records)

        if not stats.notes:
            LOGGER.warning("No notes found in %s", ", ".join(str(p) for p in paths))

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start : start + self.batch_size]
            embeddings = self.embedder.embed([meta.content for _, meta in batch])
            self.index.upsert([record_id for record_id, _ in batch], embeddings, [meta for _, meta in batch])
            stats.records += len(batch)
            LOGGER.info("Upserted %d/%d records", stats.records, len(pending))

        return stats

    def rebuild(self, corpus_dir: Path) -> IndexStats:
        """Drop the collection and index the corpus from scratch."""
        LOGGER.info("Rebuilding index %s from %s", self.index.name, corpus_dir)
        self.index.delete()
        return self.index_paths([Path(corpus_dir)])
