from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from opera.services.rate_limiter import RateLimiter


@dataclass(slots=True)
class SearchResult:
    title: str
    url: str
    snippet: str
    provider: str
    provider_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
            "provider": self.provider,
            "provider_name": self.provider_name,
        }


class BaseSearchProvider:
    """One search backend behind a per-provider rate limiter.

    Subclasses implement ``_search``; ``search`` never raises for request or
    parse failures, it logs them and returns an empty list.
    """

    name: str = ""
    display_name: str = ""
    priority: int = 100  # lower = more trusted

    def __init__(
        self,
        *,
        min_interval: float = 1.0,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        limiter: RateLimiter | None = None,
    ):
        self.timeout = timeout
        self._transport = transport
        self.limiter = limiter or RateLimiter(min_interval)

    @property
    def enabled(self) -> bool:
        return True

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport, **kwargs)

    async def search(self, query: str, *, max_results: int = 10) -> list[SearchResult]:
        if not self.enabled:
            return []
        query = " ".join(query.split())
        if not query:
            return []
        async with self.limiter:
            try:
                results = await self._search(query, max_results=max_results)
            except httpx.TimeoutException:
                logger.warning(f"{self.display_name} search timed out: {query!r}")
                return []
            except httpx.HTTPStatusError as e:
                logger.error(
                    f"{self.display_name} search failed with HTTP {e.response.status_code}: {query!r}"
                )
                return []
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                logger.error(f"{self.display_name} search failed: {e}")
                return []
        logger.info(f"{self.display_name} search: {len(results)} results for {query!r}")
        return results[:max_results]

    async def _search(self, query: str, *, max_results: int) -> list[SearchResult]:
        raise NotImplementedError

    def _result(self, title: str, url: str, snippet: str) -> SearchResult:
        return SearchResult(
            title=" ".join((title or "").split()),
            url=(url or "").strip(),
            snippet=" ".join((snippet or "").split()),
            provider=self.name,
            provider_name=self.display_name,
        )
