"""Chroma-server backed vector index."""

from __future__ import annotations

import logging
import uuid
from typing import List, Sequence

import chromadb
import numpy as np

from stickybrain.errors import IndexSchemaMismatch
from stickybrain.index.base import VectorIndex
from stickybrain.models import IndexHit, RecordMetadata

LOGGER = logging.getLogger(__name__)

COLLECTION_METADATA = {"hnsw:space": "cosine"}


def _is_dimension_error(exc: Exception) -> bool:
    return "dimension" in str(exc).lower()


class ChromaVectorIndex(VectorIndex):
    """Delegates storage and nearest-neighbour search to a Chroma server.

    The collection uses cosine space, so the distances Chroma returns are
    ``1 - cosine_similarity`` just like `InMemoryVectorIndex`.
    """

    def __init__(self, client, name: str) -> None:
        self.name = name
        self._client = client
        self._collection = None

    @classmethod
    def connect(cls, host: str, port: int, name: str) -> ChromaVectorIndex:
        return cls(chromadb.HttpClient(host=host, port=port), name)

    def probe(self) -> None:
        """Create and drop a throwaway collection; raises if the server is unusable."""
        probe_name = f"connection_test_{uuid.uuid4().hex[:8]}"
        self._client.get_or_create_collection(name=probe_name)
        self._client.delete_collection(name=probe_name)

    @property
    def collection(self):
        if self._collection is None:
            self._collection = self._client.get_or_create_collection(
                name=self.name, metadata=COLLECTION_METADATA
            )
        return self._collection

    def upsert(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]] | np.ndarray,
        metadatas: Sequence[RecordMetadata],
    ) -> None:
        self._check_lengths(ids, embeddings, metadatas)
        if not ids:
            return
        try:
            self.collection.upsert(
                ids=list(ids),
                embeddings=[[float(x) for x in vector] for vector in embeddings],
                metadatas=[meta.to_dict() for meta in metadatas],
                documents=[meta.content for meta in metadatas],
            )
        except Exception as exc:
            if _is_dimension_error(exc):
                raise IndexSchemaMismatch(None, len(embeddings[0]), str(exc)) from exc
            raise

    def query(self, embedding: Sequence[float] | np.ndarray, k: int) -> List[IndexHit]:
        total = self.count()
        if total == 0 or k <= 0:
            return []
        vector = [float(x) for x in embedding]
        try:
            response = self.collection.query(
                query_embeddings=[vector],
                n_results=min(k, total),
                include=["metadatas", "distances"],
            )
        except Exception as exc:
            if _is_dimension_error(exc):
                raise IndexSchemaMismatch(None, len(vector), str(exc)) from exc
            raise

        ids = response["ids"][0]
        distances = response["distances"][0]
        metadatas = response["metadatas"][0]
        hits = [
            IndexHit(id=record_id, distance=float(distance), metadata=RecordMetadata.from_dict(meta))
            for record_id, distance, meta in zip(ids, distances, metadatas)
        ]
        hits.sort(key=lambda hit: hit.distance)
        return hits

    def count(self) -> int:
        return int(self.collection.count())

    def delete(self) -> None:
        try:
            self._client.delete_collection(name=self.name)
        except Exception as exc:
            # Chroma raises when the collection does not exist yet.
            LOGGER.debug("delete_collection(%s) failed: %s", self.name, exc)
        self._collection = None
