"""Embedding model management."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

DEFAULT_MODEL = "sentence-transformers/all-mpnet-base-v2"
DEFAULT_DIMENSION = 768

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    dimension: int

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray: ...


def hash_embedding(text: str, dimension: int = DEFAULT_DIMENSION) -> np.ndarray:
    """Deterministic embedding built from character codes.

    Used when no embedding provider is configured or the provider fails, so
    the pipeline never blocks on a missing model or credential. Identical text
    always yields the identical vector.
    """
    vector = np.zeros(dimension, dtype="float64")
    for position, char in enumerate(text):
        vector[position % dimension] += ord(char)
    return (np.mod(vector, 1000.0) / 1000.0).astype("float32")


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` for paragraph embeddings."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        self._model = SentenceTransformer(
            self.config.model_name,
            device=self.config.device,
        )
        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info("Loaded %s (dimension %d)", self.config.model_name, self.dimension)

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = list(texts)
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)


class OpenAIEmbedder:
    """Embeddings from an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "text-embedding-3-small",
        dimension: int = DEFAULT_DIMENSION,
        base_url: str | None = None,
    ) -> None:
        from openai import OpenAI

        self.model = model
        self.dimension = dimension
        self._client = OpenAI(api_key=api_key, base_url=base_url)

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        inputs = list(texts)
        response = self._client.embeddings.create(
            model=self.model,
            input=inputs,
            dimensions=self.dimension,
        )
        return np.asarray([item.embedding for item in response.data], dtype="float32")


class EmbeddingService:
    """Embeds text with the configured provider, falling back to `hash_embedding`.

    The provider is created lazily on first use. If it cannot be created, the
    service stays in fallback mode for the rest of its life; if a single call
    fails, only that call falls back.
    """

    def __init__(
        self,
        provider_factory: Callable[[], EmbeddingProvider] | None,
        *,
        dimension: int = DEFAULT_DIMENSION,
    ) -> None:
        self._factory = provider_factory
        self._provider: EmbeddingProvider | None = None
        self._fallback_dimension = dimension

    @property
    def provider(self) -> EmbeddingProvider | None:
        if self._provider is None and self._factory is not None:
            factory, self._factory = self._factory, None
            try:
                self._provider = factory()
            except Exception as exc:
                logger.warning("Embedding provider unavailable, using hash embeddings: %s", exc)
        return self._provider

    @property
    def dimension(self) -> int:
        provider = self.provider
        return provider.dimension if provider is not None else self._fallback_dimension

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        texts = list(texts)
        provider = self.provider
        if provider is not None:
            try:
                return provider.embed(texts)
            except Exception as exc:
                logger.warning("Embedding provider failed, using hash embeddings: %s", exc)
        dimension = self.dimension
        if not texts:
            return np.zeros((0, dimension), dtype="float32")
        return np.vstack([hash_embedding(text, dimension) for text in texts])

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed([text])[0]

    async def aembed_query(self, text: str) -> np.ndarray:
        return await asyncio.to_thread(self.embed_query, text)


def build_embedding_service(config) -> EmbeddingService:
    """Select the embedding provider named by ``config.embedding_backend``."""
    backend = config.embedding_backend
    factory: Callable[[], EmbeddingProvider] | None
    if backend == "sentence-transformers":
        factory = lambda: EmbeddingModel(  # noqa: E731
            EmbeddingConfig(
                model_name=config.model_name,
                batch_size=config.embedding_batch_size,
                device=config.embedding_device,
            )
        )
    elif backend == "openai" and config.openai_api_key:
        factory = lambda: OpenAIEmbedder(  # noqa: E731
            config.openai_api_key,
            model=config.openai_embedding_model,
            dimension=config.embedding_dimension,
            base_url=config.openai_base_url,
        )
    else:
        if backend == "openai":
            logger.warning("OPENAI_API_KEY not set, using hash embeddings")
        factory = None
    return EmbeddingService(factory, dimension=config.embedding_dimension)
