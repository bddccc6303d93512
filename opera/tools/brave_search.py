from __future__ import annotations

from typing import Any

from opera.tools.search_types import BaseSearchProvider, SearchResult

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


class BraveSearch(BaseSearchProvider):
    name = "brave"
    display_name = "Brave"
    priority = 4

    def __init__(self, *, api_key: str = "", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _search(self, query: str, *, max_results: int) -> list[SearchResult]:
        params: dict[str, Any] = {"q": query, "count": max_results}
        async with self._client() as client:
            response = await client.get(
                BRAVE_SEARCH_URL,
                params=params,
                headers={
                    "Accept": "application/json",
                    "X-Subscription-Token": self.api_key,
                },
            )
            response.raise_for_status()
            payload = response.json()

        mapped: list[SearchResult] = []
        for item in payload.get("web", {}).get("results", []):
            snippets = item.get("extra_snippets", []) or []
            description = item.get("description", "") or ""
            snippet = description.strip() or " ".join(snippets).strip()
            if item.get("url"):
                mapped.append(self._result(item.get("title", ""), item["url"], snippet))
        return mapped
