from __future__ import annotations

import httpx
import pytest

from opera.tools.web_scraper import WebScraper, extract_links, extract_page, looks_blocked
from opera.tools.web_utils import context_snippet, is_scrapeable

ARTICLE_HTML = """
<html>
<head>
  <title>Springfield plant opens</title>
  <meta name="description" content="Acme Corp expands.">
  <meta name="author" content="Jane Reporter">
  <meta property="article:published_time" content="2024-03-01">
  <script>var tracking = "ignore me";</script>
</head>
<body>
  <nav><ul><li>Home</li><li>About</li></ul></nav>
  <article>
    <h1>Acme Corp opens a new plant</h1>
    <p>Acme Corp has opened a manufacturing plant on the east side of town, hiring two hundred workers.</p>
    <p>The company said production would begin next month after final inspections are complete.</p>
    <style>.x { color: red; }</style>
  </article>
  <a href="/related">Related</a>
  <a href="https://other.example.org/story#top">Story</a>
  <a href="mailto:desk@example.com">Mail</a>
</body>
</html>
"""


def _scraper(test_settings, handler) -> WebScraper:
    return WebScraper(test_settings, transport=httpx.MockTransport(handler))


def test_is_scrapeable_rejects_non_http_and_binaries():
    assert is_scrapeable("https://example.com/page")
    assert not is_scrapeable("ftp://example.com/file")
    assert not is_scrapeable("https://example.com/report.PDF")
    assert not is_scrapeable("not a url")
    assert not is_scrapeable(None)


def test_extract_page_prefers_main_content():
    page = extract_page(ARTICLE_HTML)

    assert page["title"] == "Springfield plant opens"
    assert page["description"] == "Acme Corp expands."
    assert page["author"] == "Jane Reporter"
    assert page["date_published"] == "2024-03-01"
    assert page["content"].startswith("Acme Corp opens a new plant")
    assert "tracking" not in page["content"]
    assert "color" not in page["content"]
    assert "Home" not in page["content"]


def test_extract_page_truncates_content():
    assert len(extract_page(ARTICLE_HTML, max_chars=120)["content"]) == 120


def test_extract_links_resolves_and_dedupes():
    links = extract_links(ARTICLE_HTML, "https://news.example.com/a")
    assert links == ["https://news.example.com/related", "https://other.example.org/story#top"]


def test_looks_blocked():
    assert looks_blocked(999, "")
    assert looks_blocked(403, "<div>Please solve the CAPTCHA</div>")
    assert not looks_blocked(403, "Forbidden")
    assert not looks_blocked(200, "captcha")


def test_context_snippet_centers_on_match():
    text = "a" * 200 + " Acme Corp " + "b" * 200
    snippet = context_snippet(text, "acme corp", 40)
    assert snippet.startswith("...")
    assert snippet.endswith("...")
    assert "Acme Corp" in snippet
    assert context_snippet("short Acme text", "acme") == "short Acme text"
    assert context_snippet("nothing here", "acme") == ""


@pytest.mark.asyncio
async def test_scrape_url_success(test_settings):
    scraper = _scraper(
        test_settings,
        lambda request: httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html"}),
    )
    result = await scraper.scrape_url("https://news.example.com/a")

    assert result is not None and result.ok
    assert result.status_code == 200
    assert result.word_count > 20
    assert result.title == "Springfield plant opens"


@pytest.mark.asyncio
async def test_scrape_url_blocked_status(test_settings):
    scraper = _scraper(test_settings, lambda request: httpx.Response(999, text=""))
    result = await scraper.scrape_url("https://www.linkedin.com/in/someone")

    assert result is not None
    assert result.blocked
    assert result.failure_reason == "blocked"
    assert not result.ok


@pytest.mark.asyncio
async def test_scrape_url_plain_404_returns_none(test_settings):
    scraper = _scraper(test_settings, lambda request: httpx.Response(404, text="Not found"))
    assert await scraper.scrape_url("https://example.com/missing") is None


@pytest.mark.asyncio
async def test_scrape_url_network_errors_do_not_raise(test_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    result = await _scraper(test_settings, handler).scrape_url("https://example.com/slow", timeout_ms=50)
    assert result is not None
    assert result.failure_reason == "network_error"
    assert "timeout" in result.error


@pytest.mark.asyncio
async def test_scrape_url_short_and_non_html(test_settings):
    short = _scraper(
        test_settings,
        lambda request: httpx.Response(
            200,
            text="<html><body><p>Too short.</p></body></html>",
            headers={"content-type": "text/html; charset=utf-8"},
        ),
    )
    result = await short.scrape_url("https://example.com/short")
    assert result.failure_reason == "content_too_short"

    binary = _scraper(
        test_settings,
        lambda request: httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"}),
    )
    result = await binary.scrape_url("https://example.com/download")
    assert result.failure_reason == "no_content"


@pytest.mark.asyncio
async def test_scrape_url_unscrapeable_makes_no_request(test_settings):
    calls = []
    scraper = _scraper(test_settings, lambda request: calls.append(request) or httpx.Response(200))
    result = await scraper.scrape_url("https://example.com/file.zip")
    assert result.failure_reason == "not_scrapeable"
    assert calls == []


@pytest.mark.asyncio
async def test_scrape_urls_runs_sequentially(test_settings):
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html"})

    results = await _scraper(test_settings, handler).scrape_urls(
        ["https://a.example/1", "https://b.example/2"]
    )
    assert seen == ["https://a.example/1", "https://b.example/2"]
    assert all(r.ok for r in results)
