from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import urldefrag, urljoin

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from opera.config import Settings, settings as default_settings
from opera.services.rate_limiter import RateLimiter
from opera.tools.web_utils import is_scrapeable, normalize_text

STRIP_TAGS = ["script", "style", "noscript", "iframe", "embed", "object"]

MAIN_SELECTORS = (
    "article",
    '[role="main"]',
    "main",
    ".content",
    ".post-content",
    ".entry-content",
    ".article-body",
    "#content",
    "#main-content",
)

BLOCK_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote"]

# Status used by some sites (LinkedIn) to refuse unauthenticated crawlers
ANTI_BOT_STATUS = 999

ANTI_BOT_MARKERS = (
    "captcha",
    "cf-chl",
    "challenge-platform",
    "are you a robot",
    "unusual traffic",
)


@dataclass(slots=True)
class ScrapeResult:
    url: str
    title: str | None = None
    description: str | None = None
    content: str | None = None
    author: str | None = None
    date_published: str | None = None
    status_code: int = 0
    word_count: int = 0
    error: str | None = None
    blocked: bool = False
    failure_reason: str | None = None  # blocked | not_scrapeable | no_content | content_too_short | network_error | http_error
    final_url: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure_reason is None and bool(self.content)


def _failure(url: str, reason: str, error: str, *, status_code: int = 0, blocked: bool = False) -> ScrapeResult:
    return ScrapeResult(
        url=url,
        status_code=status_code,
        error=error,
        blocked=blocked,
        failure_reason=reason,
    )


def looks_blocked(status_code: int, body: str) -> bool:
    if status_code == ANTI_BOT_STATUS:
        return True
    if status_code in (403, 429):
        lowered = body[:20000].lower()
        return any(marker in lowered for marker in ANTI_BOT_MARKERS)
    return False


def _meta(soup: BeautifulSoup, **attrs: str) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return str(tag.get("content") or "").strip()


def _select_main(soup: BeautifulSoup):
    for selector in MAIN_SELECTORS:
        candidate = soup.select_one(selector)
        if candidate is not None and len(candidate.get_text(strip=True)) > 100:
            return candidate
    return soup.body or soup


def extract_page(html: str, *, max_chars: int = 10000) -> dict[str, Any]:
    """Pull title, description, author, date and body text out of an HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(STRIP_TAGS):
        tag.decompose()

    title = ""
    if soup.title and soup.title.string:
        title = normalize_text(soup.title.string)
    if not title:
        title = _meta(soup, property="og:title")
    if not title:
        h1 = soup.find("h1")
        title = normalize_text(h1.get_text(" ")) if h1 else ""

    main = _select_main(soup)
    blocks = [normalize_text(el.get_text(" ")) for el in main.find_all(BLOCK_TAGS)]
    content = "\n\n".join(b for b in blocks if b)[:max_chars]
    if len(content) < 100:
        content = normalize_text(main.get_text(" "))[:max_chars]

    description = (
        _meta(soup, name="description")
        or _meta(soup, property="og:description")
        or content[:200]
    )

    author = _meta(soup, name="author")
    if not author:
        author_el = soup.select_one(".author") or soup.select_one('[rel="author"]')
        author = normalize_text(author_el.get_text(" ")) if author_el else ""

    date_published = _meta(soup, property="article:published_time")
    if not date_published:
        time_el = soup.select_one("time[datetime]")
        date_published = str(time_el.get("datetime")) if time_el else ""

    return {
        "title": title or "Untitled",
        "description": description,
        "content": content,
        "author": author or None,
        "date_published": date_published or None,
    }


def extract_links(html: str, base_url: str) -> list[str]:
    """Absolute http(s) links on a page, excluding self-links, first-seen order."""
    soup = BeautifulSoup(html, "html.parser")
    base = urldefrag(base_url)[0]
    links: list[str] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        try:
            full = urljoin(base_url, anchor["href"].strip())
        except ValueError:
            continue
        if not full.startswith(("http://", "https://")):
            continue
        if urldefrag(full)[0] == base or full in seen:
            continue
        seen.add(full)
        links.append(full)
    return links


class WebScraper:
    """Fetches a page over HTTP and extracts its readable content.

    Expected failures never raise: ordinary 4xx responses give ``None``; blocks,
    timeouts, server errors and empty pages give a ``ScrapeResult`` carrying
    ``error`` and ``failure_reason``.
    """

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        limiter: RateLimiter | None = None,
    ):
        self.config = config or default_settings
        self._transport = transport
        self.limiter = limiter or RateLimiter(self.config.scrape_min_interval)

    def is_scrapeable(self, url: str) -> bool:
        return is_scrapeable(url)

    async def scrape_url(self, url: str, *, timeout_ms: int | None = None) -> ScrapeResult | None:
        if not self.is_scrapeable(url):
            logger.info(f"Skipping unscrapeable URL: {url}")
            return _failure(url, "not_scrapeable", "URL is not scrapeable")

        timeout_ms = timeout_ms or self.config.scraping_timeout
        headers = {
            "User-Agent": self.config.scrape_user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        logger.info(f"Scraping {url}")
        try:
            async with httpx.AsyncClient(
                timeout=timeout_ms / 1000.0,
                follow_redirects=True,
                max_redirects=5,
                headers=headers,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            logger.warning(f"Scrape timed out after {timeout_ms}ms: {url}")
            return _failure(url, "network_error", f"timeout after {timeout_ms}ms")
        except httpx.HTTPError as e:
            logger.error(f"Scrape request failed for {url}: {e}")
            return _failure(url, "network_error", str(e) or type(e).__name__)

        status = response.status_code
        if looks_blocked(status, response.text):
            logger.warning(f"Scrape blocked by anti-bot protection ({status}): {url}")
            return _failure(
                url,
                "blocked",
                "Blocked by anti-bot protection",
                status_code=status,
                blocked=True,
            )
        if 400 <= status < 500:
            logger.warning(f"Scrape failed with HTTP {status}: {url}")
            return None
        if status >= 500:
            logger.warning(f"Scrape failed with HTTP {status}: {url}")
            return _failure(url, "http_error", f"HTTP {status}", status_code=status)

        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type and "xml" not in content_type:
            logger.info(f"Skipping non-HTML response ({content_type}): {url}")
            return _failure(url, "no_content", f"unsupported content type {content_type}", status_code=status)

        page = extract_page(response.text, max_chars=self.config.scrape_max_content_chars)
        content = page["content"]
        result = ScrapeResult(
            url=url,
            status_code=status,
            word_count=len(content.split()),
            final_url=str(response.url),
            **page,
        )
        if not content:
            result.error = "no content extracted"
            result.failure_reason = "no_content"
        elif len(content) < self.config.scrape_min_content_chars:
            result.error = f"content too short ({len(content)} chars)"
            result.failure_reason = "content_too_short"

        logger.info(
            f"Scraped {url}: title={result.title[:50]!r} words={result.word_count} "
            f"failure={result.failure_reason}"
        )
        return result

    async def scrape_urls(self, urls: list[str], *, timeout_ms: int | None = None) -> list[ScrapeResult | None]:
        results: list[ScrapeResult | None] = []
        for url in urls:
            async with self.limiter:
                results.append(await self.scrape_url(url, timeout_ms=timeout_ms))
        return results

    def extract_links(self, html: str, base_url: str) -> list[str]:
        return extract_links(html, base_url)
