"""In-process vector index used when no Chroma server is reachable."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

import numpy as np

from stickybrain.errors import IndexSchemaMismatch
from stickybrain.index.base import VectorIndex
from stickybrain.models import IndexHit, RecordMetadata, VectorRecord

LOGGER = logging.getLogger(__name__)


class InMemoryVectorIndex(VectorIndex):
    """Holds every record in memory and answers queries by brute-force cosine distance."""

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self._records: Dict[str, VectorRecord] = {}
        self.dimension: int | None = None

    def upsert(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]] | np.ndarray,
        metadatas: Sequence[RecordMetadata],
    ) -> None:
        self._check_lengths(ids, embeddings, metadatas)
        for record_id, vector, metadata in zip(ids, embeddings, metadatas):
            values = [float(x) for x in vector]
            self._check_dimension(len(values))
            self._records[record_id] = VectorRecord(id=record_id, embedding=values, metadata=metadata)

    def query(self, embedding: Sequence[float] | np.ndarray, k: int) -> List[IndexHit]:
        if not self._records or k <= 0:
            return []
        query = np.asarray(embedding, dtype="float64")
        self._check_dimension(query.shape[0], adopt=False)

        records = list(self._records.values())
        matrix = np.asarray([record.embedding for record in records], dtype="float64")
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        with np.errstate(divide="ignore", invalid="ignore"):
            similarity = np.where(norms > 0, dots / np.where(norms > 0, norms, 1.0), 0.0)
        distances = 1.0 - np.clip(similarity, -1.0, 1.0)

        order = np.argsort(distances, kind="stable")[:k]
        return [
            IndexHit(id=records[i].id, distance=float(distances[i]), metadata=records[i].metadata)
            for i in order
        ]

    def count(self) -> int:
        return len(self._records)

    def delete(self) -> None:
        LOGGER.debug("Clearing in-memory index %s (%d records)", self.name, len(self._records))
        self._records.clear()
        self.dimension = None

    def get(self, record_id: str) -> VectorRecord | None:
        return self._records.get(record_id)

    def _check_dimension(self, size: int, *, adopt: bool = True) -> None:
        if self.dimension is None:
            if adopt:
                self.dimension = size
            return
        if size != self.dimension:
            raise IndexSchemaMismatch(self.dimension, size)
