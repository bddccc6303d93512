from __future__ import annotations

from urllib.parse import parse_qs, unquote, urlparse

from bs4 import BeautifulSoup
from loguru import logger

from opera.tools.search_types import BaseSearchProvider, SearchResult

DUCKDUCKGO_HTML_URL = "https://html.duckduckgo.com/html/"

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Markers of the anomaly/CAPTCHA interstitial served to suspected bots
CAPTCHA_MARKERS = (
    "anomaly-modal",
    "Please complete the following challenge",
    "bots use DuckDuckGo",
    "Select all squares containing",
)


def is_challenge_page(html: str) -> bool:
    return any(marker in html for marker in CAPTCHA_MARKERS)


def resolve_result_url(href: str) -> str | None:
    """Turn a DuckDuckGo result link into the target URL."""
    href = (href or "").strip()
    if not href:
        return None
    if href.startswith("//"):
        href = "https:" + href
    parsed = urlparse(href)
    if parsed.netloc.endswith("duckduckgo.com"):
        target = parse_qs(parsed.query).get("uddg")
        if not target:
            return None
        href = unquote(target[0])
    if not href.startswith(("http://", "https://")):
        return None
    return href


def parse_results(html: str, max_results: int) -> list[tuple[str, str, str]]:
    """Return ``(title, url, snippet)`` tuples from a results page."""
    soup = BeautifulSoup(html, "html.parser")
    parsed: list[tuple[str, str, str]] = []
    for block in soup.select("div.result"):
        classes = block.get("class") or []
        if "result--ad" in classes:
            continue
        link = block.select_one("a.result__a")
        if link is None:
            continue
        url = resolve_result_url(link.get("href", ""))
        if not url:
            continue
        snippet_el = block.select_one(".result__snippet")
        snippet = snippet_el.get_text(" ", strip=True) if snippet_el else ""
        parsed.append((link.get_text(" ", strip=True), url, snippet))
        if len(parsed) >= max_results:
            break
    return parsed


class DuckDuckGoSearch(BaseSearchProvider):
    """Keyless provider that parses DuckDuckGo's HTML endpoint."""

    name = "duckduckgo"
    display_name = "DuckDuckGo"
    priority = 1

    def __init__(self, *, enabled: bool = True, **kwargs):
        super().__init__(**kwargs)
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def _search(self, query: str, *, max_results: int) -> list[SearchResult]:
        async with self._client(headers=BROWSER_HEADERS, follow_redirects=True) as client:
            response = await client.get(DUCKDUCKGO_HTML_URL, params={"q": query})
            response.raise_for_status()
            html = response.text

        if is_challenge_page(html):
            logger.warning(f"DuckDuckGo CAPTCHA detected, returning no results for {query!r}")
            return []

        return [self._result(title, url, snippet) for title, url, snippet in parse_results(html, max_results)]
