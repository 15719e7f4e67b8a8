"""Fetch web pages and reduce them to readable text."""

from __future__ import annotations

import logging

import httpx
from bs4 import BeautifulSoup

from stickybrain.errors import ProviderError
from stickybrain.research.search import USER_AGENT

LOGGER = logging.getLogger(__name__)


def extract_html_text(html_content: str) -> str:
    """Extract readable text from HTML, removing scripts, styles and chrome."""
    soup = BeautifulSoup(html_content, "html.parser")

    for element in soup(["script", "style", "noscript", "nav", "header", "footer", "aside", "form"]):
        element.decompose()

    text = soup.get_text()

    lines = (line.strip() for line in text.splitlines())
    chunks = (phrase.strip() for line in lines for phrase in line.split("  "))
    return "\n".join(chunk for chunk in chunks if chunk)


class PageScraper:
    """Downloads a page with a fixed timeout and returns its text, capped in length."""

    def __init__(self, client: httpx.AsyncClient, *, max_chars: int = 8000) -> None:
        self.client = client
        self.max_chars = max_chars

    async def scrape(self, url: str) -> str:
        """Return readable page text.

        Raises:
            ProviderError: on network errors, HTTP errors, non-HTML content or
                pages with no extractable text.
        """
        try:
            response = await self.client.get(
                url, headers={"User-Agent": USER_AGENT}, follow_redirects=True
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ProviderError(f"fetch failed for {url}: {exc}") from exc

        content_type = response.headers.get("content-type", "text/html").split(";")[0].strip()
        if content_type == "text/html":
            text = extract_html_text(response.text)
        elif content_type.startswith("text/"):
            text = response.text.strip()
        else:
            raise ProviderError(f"unsupported content type {content_type} for {url}")

        if not text:
            raise ProviderError(f"no readable text at {url}")
        LOGGER.debug("Scraped %s: %d chars", url, len(text))
        return text[: self.max_chars]
