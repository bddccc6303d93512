from __future__ import annotations

from typing import Any

from opera.tools.search_types import BaseSearchProvider, SearchResult

GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"

# Custom Search returns at most 10 results per request.
GOOGLE_MAX_PAGE_SIZE = 10


class GoogleSearch(BaseSearchProvider):
    """Google Custom Search JSON API (needs both an API key and an engine id)."""

    name = "google"
    display_name = "Google"
    priority = 3

    def __init__(self, *, api_key: str = "", cx: str = "", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.cx = cx

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.cx)

    async def _search(self, query: str, *, max_results: int) -> list[SearchResult]:
        params: dict[str, Any] = {
            "key": self.api_key,
            "cx": self.cx,
            "q": query,
            "num": min(max_results, GOOGLE_MAX_PAGE_SIZE),
            "safe": "active",
        }
        async with self._client() as client:
            response = await client.get(GOOGLE_SEARCH_URL, params=params)
            response.raise_for_status()
            payload = response.json()

        return [
            self._result(item.get("title", ""), item.get("link", ""), item.get("snippet", ""))
            for item in payload.get("items") or []
            if item.get("link")
        ]
