from __future__ import annotations

from typing import Any

from opera.tools.search_types import BaseSearchProvider, SearchResult

BING_SEARCH_URL = "https://api.bing.microsoft.com/v7.0/search"


class BingSearch(BaseSearchProvider):
    name = "bing"
    display_name = "Bing"
    priority = 2

    def __init__(self, *, api_key: str = "", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _search(self, query: str, *, max_results: int) -> list[SearchResult]:
        params: dict[str, Any] = {
            "q": query,
            "count": max_results,
            "offset": 0,
            "mkt": "en-US",
            "safeSearch": "Moderate",
        }
        async with self._client() as client:
            response = await client.get(
                BING_SEARCH_URL,
                params=params,
                headers={"Ocp-Apim-Subscription-Key": self.api_key},
            )
            response.raise_for_status()
            payload = response.json()

        pages = (payload.get("webPages") or {}).get("value") or []
        return [
            self._result(page.get("name", ""), page.get("url", ""), page.get("snippet", ""))
            for page in pages
            if page.get("url")
        ]
