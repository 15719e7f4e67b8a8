"""Tests for web search providers and page scraping."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from stickybrain.config import AppConfig
from stickybrain.errors import ProviderError
from stickybrain.protocol import WebSearchResult
from stickybrain.research.scrape import PageScraper, extract_html_text
from stickybrain.research.search import (
    BRAVE_ENDPOINT,
    BraveSearch,
    DuckDuckGoSearch,
    WebSearcher,
    _unwrap_duckduckgo_link,
)

DUCKDUCKGO_HTML = """
<html><body>
  <div class="result">
    <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fcrdt&rut=x">CRDT guide</a>
    <a class="result__snippet">Conflict-free <b>replicated</b> data types.</a>
  </div>
  <div class="result">
    <a class="result__a" href="https://example.org/sync">Sync engines</a>
  </div>
  <div class="result"><span>no link here</span></div>
</body></html>
"""


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _with_client(handler, action):
    async with _client(handler) as client:
        return await action(client)


class TestBraveSearch:
    """Test the Brave Search API provider."""

    def test_parses_results(self) -> None:
        """Should send the key and map web results."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["token"] = request.headers["X-Subscription-Token"]
            return httpx.Response(
                200,
                json={
                    "web": {
                        "results": [
                            {"title": "CRDTs", "url": "https://a.example", "description": "<strong>Sync</strong> data"},
                            {"title": "No url"},
                        ]
                    }
                },
            )

        results = asyncio.run(
            _with_client(handler, lambda client: BraveSearch("key").search(client, "crdt", 5))
        )

        assert seen["url"].startswith(BRAVE_ENDPOINT)
        assert "q=crdt" in seen["url"]
        assert seen["token"] == "key"
        assert [r.url for r in results] == ["https://a.example"]
        assert results[0].description == "Sync data"
        assert results[0].source == "brave"

    def test_http_error_raises(self) -> None:
        """HTTP errors surface to the caller."""
        handler = lambda request: httpx.Response(429)  # noqa: E731

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(_with_client(handler, lambda client: BraveSearch("k").search(client, "q", 5)))


class TestDuckDuckGoSearch:
    """Test the keyless HTML provider."""

    def test_parses_html(self) -> None:
        """Should unwrap redirect links and read snippets."""
        handler = lambda request: httpx.Response(200, text=DUCKDUCKGO_HTML)  # noqa: E731

        results = asyncio.run(
            _with_client(handler, lambda client: DuckDuckGoSearch().search(client, "crdt", 5))
        )

        assert [r.url for r in results] == ["https://example.com/crdt", "https://example.org/sync"]
        assert results[0].title == "CRDT guide"
        assert results[0].description == "Conflict-free replicated data types."
        assert results[1].description == ""

    def test_limit(self) -> None:
        """Should stop at the limit."""
        handler = lambda request: httpx.Response(200, text=DUCKDUCKGO_HTML)  # noqa: E731

        results = asyncio.run(
            _with_client(handler, lambda client: DuckDuckGoSearch().search(client, "crdt", 1))
        )

        assert len(results) == 1

    def test_unwrap_link(self) -> None:
        """Plain and protocol-relative links are handled."""
        assert _unwrap_duckduckgo_link("https://x.example/a") == "https://x.example/a"
        assert _unwrap_duckduckgo_link("//x.example/a") == "https://x.example/a"


class TestWebSearcher:
    """Test provider fallback."""

    def _provider(self, name: str, **kwargs) -> Mock:
        provider = Mock()
        provider.name = name
        provider.search = AsyncMock(**kwargs)
        return provider

    def test_primary_results_used(self) -> None:
        """The secondary is not consulted when the primary answers."""
        hit = WebSearchResult(query="q", title="t", url="https://a")
        primary = self._provider("brave", return_value=[hit])
        secondary = self._provider("duckduckgo", return_value=[])

        results = asyncio.run(WebSearcher(primary, secondary, client=Mock()).search("q"))

        assert results == [hit]
        secondary.search.assert_not_called()

    def test_falls_back_on_error(self) -> None:
        """A failing primary falls back to the secondary."""
        hit = WebSearchResult(query="q", title="t", url="https://b")
        primary = self._provider("brave", side_effect=httpx.ConnectError("down"))
        secondary = self._provider("duckduckgo", return_value=[hit])

        results = asyncio.run(WebSearcher(primary, secondary, client=Mock(), limit=3).search("q"))

        assert results == [hit]
        assert secondary.search.call_args.args[2] == 3

    def test_falls_back_on_empty(self) -> None:
        """A primary with zero results falls back to the secondary."""
        hit = WebSearchResult(query="q", title="t", url="https://b")
        primary = self._provider("brave", return_value=[])
        secondary = self._provider("duckduckgo", return_value=[hit])

        results = asyncio.run(WebSearcher(primary, secondary, client=Mock()).search("q"))

        assert results == [hit]
        primary.search.assert_awaited_once()
        secondary.search.assert_awaited_once()

    def test_all_fail(self) -> None:
        """No provider means no results, not an exception."""
        secondary = self._provider("duckduckgo", side_effect=RuntimeError("blocked"))

        assert asyncio.run(WebSearcher(None, secondary, client=Mock()).search("q")) == []

    def test_from_config(self, tmp_path) -> None:
        """Brave is only used with a key."""
        client = Mock()
        with_key = WebSearcher.from_config(AppConfig(watch_dir=tmp_path, brave_api_key="k"), client)
        without_key = WebSearcher.from_config(AppConfig(watch_dir=tmp_path), client)

        assert isinstance(with_key.primary, BraveSearch)
        assert without_key.primary is None
        assert isinstance(without_key.secondary, DuckDuckGoSearch)


class TestExtractHtmlText:
    """Test HTML to text conversion."""

    def test_removes_chrome(self) -> None:
        """Scripts, styles and navigation are dropped."""
        html = (
            "<html><head><style>p{}</style><script>var x;</script></head>"
            "<body><nav>Menu</nav>\n<h1>Title</h1>\n<p>Body text.</p>\n<footer>Legal</footer></body></html>"
        )

        text = extract_html_text(html)

        assert text.splitlines() == ["Title", "Body text."]


class TestPageScraper:
    """Test page fetching."""

    def test_html_page(self) -> None:
        """HTML pages are reduced to text and capped."""
        handler = lambda request: httpx.Response(  # noqa: E731
            200, html="<p>" + "word " * 100 + "</p>"
        )

        text = asyncio.run(
            _with_client(handler, lambda client: PageScraper(client, max_chars=20).scrape("https://x"))
        )

        assert len(text) == 20

    def test_plain_text_page(self) -> None:
        """Other text types are returned as-is."""
        handler = lambda request: httpx.Response(  # noqa: E731
            200, text="plain body", headers={"content-type": "text/plain; charset=utf-8"}
        )

        text = asyncio.run(_with_client(handler, lambda client: PageScraper(client).scrape("https://x")))

        assert text == "plain body"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(404),
            httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"}),
            httpx.Response(200, html="<script>only()</script>"),
        ],
    )
    def test_failures_raise_provider_error(self, response: httpx.Response) -> None:
        """HTTP errors, binary content and empty pages are errors."""
        handler = lambda request: response  # noqa: E731

        with pytest.raises(ProviderError):
            asyncio.run(_with_client(handler, lambda client: PageScraper(client).scrape("https://x")))
