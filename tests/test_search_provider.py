from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import StaticProvider
from opera.tools.bing_search import BingSearch
from opera.tools.brave_search import BraveSearch
from opera.tools.duckduckgo_search import DuckDuckGoSearch, resolve_result_url
from opera.tools.google_search import GoogleSearch
from opera.tools.search_provider import SearchAggregator, build_providers, dedupe_results
from opera.tools.search_types import SearchResult

DDG_RESULTS_HTML = """
<html><body>
<div class="result results_links result--ad">
  <a class="result__a" href="https://ads.example.com/buy">Sponsored</a>
</div>
<div class="result results_links">
  <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Facme&amp;rut=abc">Acme Corp news</a>
  <a class="result__snippet">Acme Corp opens a plant in Springfield.</a>
</div>
<div class="result results_links">
  <a class="result__a" href="https://other.example.org/page">Other page</a>
  <div class="result__snippet">Another   snippet</div>
</div>
</body></html>
"""

DDG_CAPTCHA_HTML = """
<html><body><div class="anomaly-modal__title">Unfortunately, bots use DuckDuckGo too.</div>
<p>Please complete the following challenge to confirm this search was made by a human.</p></body></html>
"""


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_duckduckgo_parses_results_and_skips_ads():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["q"] = request.url.params.get("q")
        return httpx.Response(200, text=DDG_RESULTS_HTML)

    provider = DuckDuckGoSearch(min_interval=0, transport=_transport(handler))
    results = await provider.search("acme   corp", max_results=5)

    assert seen["q"] == "acme corp"
    assert [r.url for r in results] == ["https://example.com/acme", "https://other.example.org/page"]
    assert results[0].title == "Acme Corp news"
    assert results[0].snippet == "Acme Corp opens a plant in Springfield."
    assert results[1].snippet == "Another snippet"
    assert results[0].provider == "duckduckgo"
    assert results[0].provider_name == "DuckDuckGo"


@pytest.mark.asyncio
async def test_duckduckgo_captcha_page_is_empty_result():
    provider = DuckDuckGoSearch(
        min_interval=0,
        transport=_transport(lambda request: httpx.Response(200, text=DDG_CAPTCHA_HTML)),
    )
    assert await provider.search("acme corp") == []


def test_resolve_result_url():
    assert resolve_result_url("//duckduckgo.com/l/?uddg=https%3A%2F%2Fa.com%2Fx") == "https://a.com/x"
    assert resolve_result_url("https://b.com/") == "https://b.com/"
    assert resolve_result_url("javascript:void(0)") is None
    assert resolve_result_url("//duckduckgo.com/l/?rut=1") is None


@pytest.mark.asyncio
async def test_bing_maps_web_pages():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Ocp-Apim-Subscription-Key"] == "bing-key"
        return httpx.Response(
            200,
            json={"webPages": {"value": [{"name": "Bing hit", "url": "https://bing.example/1", "snippet": "s"}]}},
        )

    provider = BingSearch(api_key="bing-key", min_interval=0, transport=_transport(handler))
    results = await provider.search("q")
    assert [(r.title, r.url, r.snippet) for r in results] == [("Bing hit", "https://bing.example/1", "s")]


@pytest.mark.asyncio
async def test_google_requires_key_and_cx():
    assert not GoogleSearch(api_key="k", cx="").enabled

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["num"] == "10"
        return httpx.Response(200, json={"items": [{"title": "G", "link": "https://g.example", "snippet": "x"}]})

    provider = GoogleSearch(api_key="k", cx="cx", min_interval=0, transport=_transport(handler))
    results = await provider.search("q", max_results=25)
    assert [r.url for r in results] == ["https://g.example"]


@pytest.mark.asyncio
async def test_brave_falls_back_to_extra_snippets():
    payload = {
        "web": {
            "results": [
                {"title": "Result 1", "url": "https://example.com/1", "description": "Desc 1"},
                {"title": "Result 2", "url": "https://example.com/2", "extra_snippets": ["Snippet 2a", "Snippet 2b"]},
            ]
        }
    }
    provider = BraveSearch(
        api_key="brave-key",
        min_interval=0,
        transport=_transport(lambda request: httpx.Response(200, json=payload)),
    )
    results = await provider.search("query", max_results=2)

    assert [r.snippet for r in results] == ["Desc 1", "Snippet 2a Snippet 2b"]


@pytest.mark.asyncio
async def test_provider_errors_become_empty_results():
    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def bad_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    for handler in (server_error, timeout, bad_json):
        provider = BingSearch(api_key="k", min_interval=0, transport=_transport(handler))
        assert await provider.search("q") == []


@pytest.mark.asyncio
async def test_disabled_provider_makes_no_request():
    handler = AsyncMock()
    provider = BraveSearch(api_key="", min_interval=0, transport=httpx.MockTransport(handler))
    assert await provider.search("q") == []
    handler.assert_not_called()


def test_build_providers_enables_by_credentials(test_settings):
    providers = build_providers(test_settings.model_copy(update={"bing_api_key": "k", "enable_duckduckgo": True}))
    enabled = {p.name for p in providers if p.enabled}
    assert enabled == {"duckduckgo", "bing"}


def test_dedupe_results_is_case_and_whitespace_insensitive():
    results = [
        SearchResult(title="a", url="https://Example.com/A ", snippet="", provider="p1"),
        SearchResult(title="b", url="https://example.com/a", snippet="", provider="p2"),
    ]
    assert [r.title for r in dedupe_results(results)] == ["a"]


@pytest.mark.asyncio
async def test_search_all_keeps_higher_priority_duplicate():
    low = StaticProvider([("from low", "https://EXAMPLE.com/page ", "")], name="low", priority=2)
    high = StaticProvider(
        [("from high", "https://example.com/page", ""), ("only high", "https://example.com/other", "")],
        name="high",
        priority=1,
    )
    aggregator = SearchAggregator([low, high])

    results = await aggregator.search_all("acme")

    assert [r.title for r in results] == ["from high", "only high"]
    assert results[0].provider == "high"


@pytest.mark.asyncio
async def test_search_all_isolates_failing_provider():
    good = StaticProvider([("ok", "https://example.com/ok", "")], name="good", priority=2)
    broken = StaticProvider([], name="broken", priority=1)
    broken.search = AsyncMock(side_effect=RuntimeError("provider exploded"))

    results = await SearchAggregator([good, broken]).search_all("acme")

    assert [r.url for r in results] == ["https://example.com/ok"]


def test_available_providers_lists_enabled_only():
    aggregator = SearchAggregator(
        [BraveSearch(api_key=""), StaticProvider([], name="static", priority=1)]
    )
    assert aggregator.available_providers() == [{"name": "static", "displayName": "Static", "priority": 1}]
