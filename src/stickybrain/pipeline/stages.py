"""Pipeline stages.

Each stage is ``async (state, context) -> partial`` where ``partial`` is a
mapping of state fields to set. Stages never raise on provider failures: they
log, substitute a deterministic fallback, and record their name in
``fallbacks``. The single exception is a repeated schema mismatch in
`retrieve`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Sequence

from stickybrain.embedding.encoder import EmbeddingService
from stickybrain.errors import IndexSchemaMismatch
from stickybrain.index.base import VectorIndex, similarity_from_distance
from stickybrain.llm import prompts
from stickybrain.llm.client import TextGenerator
from stickybrain.models import IndexHit
from stickybrain.pipeline.state import PipelineState
from stickybrain.protocol import Snippet, WebSearchResult
from stickybrain.research.scrape import PageScraper
from stickybrain.research.search import WebSearcher
from stickybrain.utils.text import first_line, first_sentence, truncate

LOGGER = logging.getLogger(__name__)

NOTHING_AVAILABLE = "Nothing related is available for this paragraph yet."
PAGE_FALLBACK_CHARS = 300
FALLBACK_QUERY_CHARS = 150

Partial = Dict[str, Any]


@dataclass
class PipelineContext:
    """Collaborators shared by the stages of one worker."""

    embedder: EmbeddingService
    index: VectorIndex
    generator: TextGenerator | None = None
    searcher: WebSearcher | None = None
    scraper: PageScraper | None = None
    rebuild_index: Callable[[], Any] | None = None
    max_queries: int = 3
    pages_to_scrape: int = 2
    search_delay: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)


async def _generate(context: PipelineContext, stage: str, prompt: str, **kwargs: Any) -> str | None:
    """Run a generation call, returning ``None`` when unavailable or failed."""
    if context.generator is None:
        return None
    try:
        return await context.generator.generate(prompt, **kwargs)
    except Exception as exc:
        LOGGER.warning("%s: generation failed, using fallback: %s", stage, exc)
        return None


# Branch A: retrieval


async def embed(state: PipelineState, context: PipelineContext) -> Partial:
    vector = await context.embedder.aembed_query(state.paragraph)
    return {"embedding": [float(x) for x in vector]}


async def retrieve(state: PipelineState, context: PipelineContext) -> Partial:
    try:
        hits = await asyncio.to_thread(context.index.query, state.embedding, state.top_k)
    except IndexSchemaMismatch as exc:
        if context.rebuild_index is None:
            raise
        LOGGER.warning("Index schema mismatch (%s), rebuilding index and retrying once", exc)
        await asyncio.to_thread(context.rebuild_index)
        hits = await asyncio.to_thread(context.index.query, state.embedding, state.top_k)
    LOGGER.debug("Retrieved %d candidates", len(hits))
    return {"hits": hits}


def filter_hits(hits: Sequence[IndexHit], *, threshold: float, exclude_path: str) -> List[Snippet]:
    """Keep close hits and title records, never the note being edited.

    Order follows ``hits`` (closest first).
    """
    snippets: List[Snippet] = []
    for hit in hits:
        meta = hit.metadata
        if exclude_path and meta.source_path == exclude_path:
            continue
        similarity = similarity_from_distance(hit.distance)
        if similarity < threshold and not meta.is_title_record:
            continue
        content = meta.preview if meta.is_title_record and meta.preview else meta.content
        snippets.append(
            Snippet(
                id=hit.id,
                title=meta.title,
                content=content,
                similarity=similarity,
                source_path=meta.source_path,
            )
        )
    return snippets


async def filter_snippets(state: PipelineState, context: PipelineContext) -> Partial:
    snippets = filter_hits(
        state.hits or [], threshold=state.similarity_threshold, exclude_path=state.exclude_path
    )
    LOGGER.debug("Kept %d of %d candidates", len(snippets), len(state.hits or []))
    return {"snippets": snippets}


def fallback_summary(kept: int, candidates: int) -> str:
    noun = "note" if kept == 1 else "notes"
    return f"Found {kept} related {noun} among {candidates} candidates."


async def summarize(state: PipelineState, context: PipelineContext) -> Partial:
    snippets = state.snippets or []
    prompt = prompts.summary_prompt(
        state.paragraph, [(s.title, s.content) for s in snippets], state.user_goals
    )
    text = await _generate(
        context, "summarize", prompt, system=prompts.SUMMARY_SYSTEM, max_tokens=512
    )
    if text is None:
        return {
            "summary": fallback_summary(len(snippets), len(state.hits or [])),
            "fallbacks": ["summarize"],
        }
    return {"summary": text}


# Branch B: web augmentation

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def parse_queries(text: str, limit: int) -> List[str]:
    queries: List[str] = []
    for line in text.splitlines():
        query = _LIST_MARKER.sub("", line).strip().strip('"').strip()
        if query and query not in queries:
            queries.append(query)
    return queries[:limit]


def fallback_queries(paragraph: str, goals: str = "") -> List[str]:
    """The paragraph itself, plus the first line of the goals, as one query."""
    parts = [" ".join(paragraph.split())]
    goal_line = first_line(goals)
    if goal_line:
        parts.append(goal_line)
    query = truncate(" ".join(part for part in parts if part), FALLBACK_QUERY_CHARS)
    return [query] if query else []


async def generate_search_prompt(state: PipelineState, context: PipelineContext) -> Partial:
    prompt = prompts.search_queries_prompt(state.paragraph, state.user_goals, context.max_queries)
    text = await _generate(
        context, "generate_search_prompt", prompt, system=prompts.SEARCH_SYSTEM, max_tokens=150
    )
    queries = parse_queries(text, context.max_queries) if text else []
    partial: Partial = {}
    if not queries:
        queries = fallback_queries(state.paragraph, state.user_goals)
        partial["fallbacks"] = ["generate_search_prompt"]
    partial.update(web_search_queries=queries, web_search_prompt="\n".join(queries))
    return partial


async def execute_search(state: PipelineState, context: PipelineContext) -> Partial:
    results: List[WebSearchResult] = []
    if context.searcher is None:
        return {"web_search_results": results}
    seen: set[str] = set()
    for position, query in enumerate(state.web_search_queries or []):
        if position:
            await context.sleep(context.search_delay)
        for result in await context.searcher.search(query):
            if result.url not in seen:
                seen.add(result.url)
                results.append(result)
    LOGGER.info("Web search returned %d results", len(results))
    return {"web_search_results": results}


_NUMBER = re.compile(r"\d+")


def parse_selection(text: str, available: int, count: int) -> List[int]:
    """Zero-based indices named in ``text``, topped up from the front to ``count``."""
    chosen: List[int] = []
    for match in _NUMBER.findall(text):
        index = int(match) - 1
        if 0 <= index < available and index not in chosen:
            chosen.append(index)
        if len(chosen) == count:
            break
    for index in range(available):
        if len(chosen) >= count:
            break
        if index not in chosen:
            chosen.append(index)
    return chosen


async def select_pages(state: PipelineState, context: PipelineContext) -> Partial:
    results = state.web_search_results or []
    count = context.pages_to_scrape
    partial: Partial = {}
    if len(results) <= count:
        chosen = list(range(len(results)))
    else:
        prompt = prompts.select_pages_prompt(
            state.paragraph, [(r.title, r.url, r.description) for r in results], count
        )
        text = await _generate(
            context, "select_pages", prompt, system=prompts.SELECT_SYSTEM, max_tokens=30
        )
        if text is None:
            chosen = list(range(count))
            partial["fallbacks"] = ["select_pages"]
        else:
            chosen = parse_selection(text, len(results), count)
    for position, result in enumerate(results):
        result.merge(selected_for_scraping=position in chosen)
    partial["web_search_results"] = results
    return partial


async def scrape(state: PipelineState, context: PipelineContext) -> Partial:
    results = state.web_search_results or []
    for result in results:
        if not result.selected_for_scraping:
            continue
        if context.scraper is None:
            result.merge(scraping_error="scraping disabled")
            continue
        try:
            result.merge(scraped_content=await context.scraper.scrape(result.url))
        except Exception as exc:
            LOGGER.warning("Scraping %s failed: %s", result.url, exc)
            result.merge(scraping_error=str(exc))
    return {"web_search_results": results}


async def summarize_pages(state: PipelineState, context: PipelineContext) -> Partial:
    results = state.web_search_results or []
    for result in results:
        if not result.scraped_content:
            continue
        prompt = prompts.page_summary_prompt(state.paragraph, result.title, result.scraped_content)
        text = await _generate(
            context, "summarize_pages", prompt, system=prompts.PAGE_SYSTEM, max_tokens=200
        )
        if text is None:
            excerpt = " ".join(result.scraped_content.split())
            result.merge(
                page_summary=truncate(excerpt, PAGE_FALLBACK_CHARS),
                summary_error="generation unavailable",
            )
        else:
            result.merge(page_summary=text)
    return {"web_search_results": results}


# Synthesis


async def synthesize(state: PipelineState, context: PipelineContext) -> Partial:
    summary = state.summary if state.summary and not state.used_fallback("summarize") else ""
    page_summaries = [r.page_summary for r in state.web_search_results or [] if r.page_summary]
    if not summary and not page_summaries:
        return {"synthesis": NOTHING_AVAILABLE}

    prompt = prompts.synthesis_prompt(summary, page_summaries, state.user_goals)
    text = await _generate(
        context, "synthesize", prompt, system=prompts.SYNTHESIS_SYSTEM, max_tokens=120
    )
    if text is None:
        return {
            "synthesis": first_sentence(summary or page_summaries[0]),
            "fallbacks": ["synthesize"],
        }
    return {"synthesis": text}
