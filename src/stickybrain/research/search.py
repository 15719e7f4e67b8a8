"""Web search providers."""

from __future__ import annotations

import logging
from typing import List, Protocol
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup

from stickybrain.protocol import WebSearchResult

LOGGER = logging.getLogger(__name__)

BRAVE_ENDPOINT = "https://api.search.brave.com/res/v1/web/search"
DUCKDUCKGO_ENDPOINT = "https://html.duckduckgo.com/html/"
USER_AGENT = "Mozilla/5.0 (compatible; stickybrain/0.1)"


class SearchProvider(Protocol):
    name: str

    async def search(self, client: httpx.AsyncClient, query: str, limit: int) -> List[WebSearchResult]: ...


class BraveSearch:
    """Brave Search API; needs ``BRAVE_API_KEY``."""

    name = "brave"

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    async def search(self, client: httpx.AsyncClient, query: str, limit: int) -> List[WebSearchResult]:
        response = await client.get(
            BRAVE_ENDPOINT,
            params={"q": query, "count": limit},
            headers={"X-Subscription-Token": self.api_key, "Accept": "application/json"},
        )
        response.raise_for_status()
        items = (response.json().get("web") or {}).get("results") or []
        return [
            WebSearchResult(
                query=query,
                title=item.get("title") or item.get("url", ""),
                url=item["url"],
                description=BeautifulSoup(item.get("description") or "", "html.parser").get_text(),
                source=self.name,
            )
            for item in items[:limit]
            if item.get("url")
        ]


def _unwrap_duckduckgo_link(href: str) -> str:
    """DuckDuckGo wraps result links in ``/l/?uddg=<target>`` redirects."""
    parsed = urlparse(href)
    target = parse_qs(parsed.query).get("uddg")
    if target:
        return target[0]
    if href.startswith("//"):
        return "https:" + href
    return href


class DuckDuckGoSearch:
    """Keyless search by scraping DuckDuckGo's HTML endpoint."""

    name = "duckduckgo"

    async def search(self, client: httpx.AsyncClient, query: str, limit: int) -> List[WebSearchResult]:
        response = await client.post(
            DUCKDUCKGO_ENDPOINT,
            data={"q": query},
            headers={"User-Agent": USER_AGENT},
        )
        response.raise_for_status()
        soup = BeautifulSoup(response.text, "html.parser")
        results: List[WebSearchResult] = []
        for block in soup.select("div.result"):
            link = block.select_one("a.result__a")
            if link is None or not link.get("href"):
                continue
            snippet = block.select_one(".result__snippet")
            results.append(
                WebSearchResult(
                    query=query,
                    title=link.get_text(" ", strip=True),
                    url=_unwrap_duckduckgo_link(link["href"]),
                    description=snippet.get_text(" ", strip=True) if snippet else "",
                    source=self.name,
                )
            )
            if len(results) >= limit:
                break
        return results


class WebSearcher:
    """Queries the primary provider and falls back to the secondary on zero results."""

    def __init__(
        self,
        primary: SearchProvider | None,
        secondary: SearchProvider | None,
        *,
        client: httpx.AsyncClient,
        limit: int = 5,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.client = client
        self.limit = limit

    async def search(self, query: str) -> List[WebSearchResult]:
        results = await self._run(self.primary, query)
        if not results:
            results = await self._run(self.secondary, query)
        return results

    async def _run(self, provider: SearchProvider | None, query: str) -> List[WebSearchResult]:
        if provider is None:
            return []
        try:
            results = await provider.search(self.client, query, self.limit)
        except Exception as exc:
            LOGGER.warning("%s search failed for %r: %s", provider.name, query, exc)
            return []
        LOGGER.debug("%s returned %d results for %r", provider.name, len(results), query)
        return results

    @classmethod
    def from_config(cls, config, client: httpx.AsyncClient) -> WebSearcher:
        primary = BraveSearch(config.brave_api_key) if config.brave_api_key else None
        return cls(primary, DuckDuckGoSearch(), client=client, limit=config.results_per_query)
