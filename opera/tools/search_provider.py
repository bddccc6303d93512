from __future__ import annotations

import asyncio
from typing import Any, Sequence

from loguru import logger

from opera.config import Settings, settings as default_settings
from opera.tools.bing_search import BingSearch
from opera.tools.brave_search import BraveSearch
from opera.tools.duckduckgo_search import DuckDuckGoSearch
from opera.tools.google_search import GoogleSearch
from opera.tools.search_types import BaseSearchProvider, SearchResult


def normalize_url(url: str) -> str:
    return (url or "").strip().lower()


def dedupe_results(results: list[SearchResult]) -> list[SearchResult]:
    """Keep the first occurrence of each normalized URL."""
    seen: set[str] = set()
    deduped: list[SearchResult] = []
    for result in results:
        key = normalize_url(result.url)
        if not key or key in seen:
            continue
        seen.add(key)
        deduped.append(result)
    return deduped


def build_providers(config: Settings | None = None, **provider_kwargs: Any) -> list[BaseSearchProvider]:
    config = config or default_settings
    common = {"timeout": config.search_timeout_seconds, **provider_kwargs}
    return [
        DuckDuckGoSearch(
            enabled=config.enable_duckduckgo,
            min_interval=config.duckduckgo_min_interval,
            **common,
        ),
        BingSearch(api_key=config.bing_api_key, min_interval=config.bing_min_interval, **common),
        GoogleSearch(
            api_key=config.google_api_key,
            cx=config.google_cx,
            min_interval=config.google_min_interval,
            **common,
        ),
        BraveSearch(api_key=config.brave_api_key, min_interval=config.brave_min_interval, **common),
    ]


class SearchAggregator:
    """Fans a query out to every enabled provider and merges the results."""

    def __init__(self, providers: Sequence[BaseSearchProvider] | None = None):
        if providers is None:
            providers = build_providers()
        self.providers = sorted(providers, key=lambda p: p.priority)

    def enabled_providers(self) -> list[BaseSearchProvider]:
        return [p for p in self.providers if p.enabled]

    def available_providers(self) -> list[dict[str, Any]]:
        return [
            {"name": p.name, "displayName": p.display_name, "priority": p.priority}
            for p in self.enabled_providers()
        ]

    async def search_all(self, query: str, *, max_results: int = 10) -> list[SearchResult]:
        providers = self.enabled_providers()
        if not providers:
            logger.warning("No search providers enabled")
            return []

        outcomes = await asyncio.gather(
            *(p.search(query, max_results=max_results) for p in providers),
            return_exceptions=True,
        )

        merged: list[SearchResult] = []
        succeeded: list[str] = []
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"{provider.display_name} raised during search: {outcome!r}")
                continue
            succeeded.append(provider.name)
            merged.extend(outcome)

        # providers is already priority-ordered, so first occurrence wins
        deduped = dedupe_results(merged)
        logger.info(
            f"Search complete for {query!r}: {len(deduped)} unique of {len(merged)} "
            f"from {succeeded}"
        )
        return deduped
