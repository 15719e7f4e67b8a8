"""Pipeline worker process entry point."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx

from stickybrain.config import AppConfig
from stickybrain.embedding.encoder import EmbeddingService, build_embedding_service
from stickybrain.index.base import VectorIndex
from stickybrain.index.factory import open_vector_index
from stickybrain.index.indexer import Indexer
from stickybrain.llm.client import TextGenerator
from stickybrain.pipeline.runner import Emit, Pipeline
from stickybrain.pipeline.stages import PipelineContext
from stickybrain.protocol import ErrorMessage, PipelineResult, ResultMessage, RunMessage, parse_message
from stickybrain.research.scrape import PageScraper
from stickybrain.research.search import WebSearcher

LOGGER = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0


def prepare_index(config: AppConfig, embedder: EmbeddingService) -> tuple[VectorIndex, Indexer]:
    """Open the index, building it from the corpus when it is empty.

    A fresh in-memory index starts empty in every worker, so it is always
    built here; a Chroma collection only on first use.
    """
    index = open_vector_index(config)
    indexer = Indexer(embedder, index)
    corpus = Path(config.corpus_dir)
    if index.count() == 0 and corpus.exists():
        indexer.index_paths([corpus])
    return index, indexer


async def run_request(config: AppConfig, request: RunMessage, emit: Emit | None = None) -> PipelineResult:
    embedder = build_embedding_service(config)
    index, indexer = await asyncio.to_thread(prepare_index, config, embedder)
    generator = TextGenerator.from_config(config)
    timeout = httpx.Timeout(config.scrape_timeout, connect=CONNECT_TIMEOUT)
    async with httpx.AsyncClient(timeout=timeout) as client:
        context = PipelineContext(
            embedder=embedder,
            index=index,
            generator=generator,
            searcher=WebSearcher.from_config(config, client),
            scraper=PageScraper(client, max_chars=config.max_page_chars),
            rebuild_index=lambda: indexer.rebuild(Path(config.corpus_dir)),
            max_queries=config.max_queries,
            pages_to_scrape=config.pages_to_scrape,
            search_delay=config.search_delay,
        )
        pipeline = Pipeline(
            context, similarity_threshold=config.similarity_threshold, top_k=config.top_k
        )
        try:
            return await pipeline.run(request, emit=emit)
        finally:
            if generator is not None:
                await generator.aclose()


def worker_main(conn, config: AppConfig, log_level: int = logging.INFO) -> None:
    """Serve exactly one ``run`` request received on ``conn``, then exit."""
    logging.basicConfig(level=log_level, format="[%(levelname)s] %(message)s")
    try:
        payload = conn.recv()
    except EOFError:
        return

    try:
        request = parse_message(payload)
        if not isinstance(request, RunMessage):
            raise ValueError(f"worker expected a run message, got {request.type}")
        result = asyncio.run(run_request(config, request, emit=conn.send))
    except Exception as exc:
        LOGGER.exception("Pipeline failed")
        conn.send(ErrorMessage(message=str(exc) or type(exc).__name__).to_wire())
    else:
        conn.send(ResultMessage(result=result).to_wire())
    finally:
        conn.close()
