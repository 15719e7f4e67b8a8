"""Vector index interface shared by the remote and in-process stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence

import numpy as np

from stickybrain.models import IndexHit, RecordMetadata


def cosine_distance(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """``1 - cosine_similarity(a, b)``; a zero vector is at distance 1 from everything."""
    left = np.asarray(a, dtype="float64")
    right = np.asarray(b, dtype="float64")
    norm = float(np.linalg.norm(left) * np.linalg.norm(right))
    if norm == 0.0:
        return 1.0
    similarity = float(np.dot(left, right)) / norm
    return 1.0 - max(-1.0, min(1.0, similarity))


def similarity_from_distance(distance: float) -> float:
    """Map a raw index distance onto a (0, 1] similarity score."""
    return 1.0 / (1.0 + max(0.0, float(distance)))


class VectorIndex(ABC):
    """A content-addressed store of (id, embedding, metadata) triples."""

    name: str

    @abstractmethod
    def upsert(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]] | np.ndarray,
        metadatas: Sequence[RecordMetadata],
    ) -> None:
        """Insert or replace records by id."""

    @abstractmethod
    def query(self, embedding: Sequence[float] | np.ndarray, k: int) -> List[IndexHit]:
        """Return up to ``k`` nearest records, closest first."""

    @abstractmethod
    def count(self) -> int: ...

    @abstractmethod
    def delete(self) -> None:
        """Drop every record (and the backing collection, if any)."""

    @staticmethod
    def _check_lengths(ids: Sequence[str], embeddings, metadatas: Sequence[RecordMetadata]) -> None:
        if not (len(ids) == len(embeddings) == len(metadatas)):
            raise ValueError("ids, embeddings and metadatas length mismatch")
