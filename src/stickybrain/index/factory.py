"""Select the vector index implementation for a configuration."""

from __future__ import annotations

import logging

from stickybrain.index.base import VectorIndex
from stickybrain.index.chroma import ChromaVectorIndex
from stickybrain.index.memory import InMemoryVectorIndex

LOGGER = logging.getLogger(__name__)


def open_vector_index(config) -> VectorIndex:
    """Return a Chroma-backed index when the server answers the probe, else in-memory."""
    if not config.chroma_host:
        LOGGER.info("No Chroma server configured, using in-memory index")
        return InMemoryVectorIndex(config.collection_name)

    try:
        index = ChromaVectorIndex.connect(config.chroma_host, config.chroma_port, config.collection_name)
        index.probe()
    except Exception as exc:
        LOGGER.warning(
            "Chroma server at %s:%s not available (%s), falling back to in-memory index",
            config.chroma_host,
            config.chroma_port,
            exc,
        )
        return InMemoryVectorIndex(config.collection_name)

    LOGGER.info("Using Chroma server at %s:%s", config.chroma_host, config.chroma_port)
    return index
