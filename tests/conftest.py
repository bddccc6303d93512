"""Shared fakes for pipeline tests."""
import os
import re

os.environ.setdefault("LOG_TO_FILE", "false")

import pytest

from opera.config import Settings
from opera.models.events import EventType, SSEEvent
from opera.models.project import Coordinates
from opera.tools.geocoder import GeocodeResult
from opera.tools.search_types import BaseSearchProvider, SearchResult


class FakeEnt:
    def __init__(self, text: str, label_: str):
        self.text = text
        self.label_ = label_


class FakeSent:
    def __init__(self, text: str):
        self.text = text


class FakeDoc:
    def __init__(self, ents: list[FakeEnt], sents: list[FakeSent]):
        self.ents = ents
        self.sents = sents


class FakeNLP:
    """Stands in for a spaCy pipeline: tags the given phrases wherever they occur."""

    def __init__(self, entities: dict[str, str] | None = None):
        self.entities = entities or {}
        self.calls = 0

    def __call__(self, text: str) -> FakeDoc:
        self.calls += 1
        ents = [FakeEnt(phrase, label) for phrase, label in self.entities.items() if phrase in text]
        sents = [FakeSent(s) for s in re.split(r"(?<=[.!?])\s+", text) if s.strip()]
        return FakeDoc(ents, sents)


class FakeGeocoder:
    """Geocodes only the addresses it knows (case-insensitive)."""

    def __init__(self, known: dict[str, tuple[float, float]] | None = None, *, bbox: list[float] | None = None):
        self.known = {k.lower(): v for k, v in (known or {}).items()}
        self.bbox = bbox
        self.calls: list[str] = []

    async def geocode(self, address: str) -> list[GeocodeResult]:
        self.calls.append(address)
        coords = self.known.get(address.lower())
        if coords is None:
            return []
        return [
            GeocodeResult(
                coords=Coordinates(lat=coords[0], lng=coords[1]),
                address=f"{address}, Resolved",
                city="Springfield",
                state="Illinois",
                country="United States",
                bbox=self.bbox,
            )
        ]

    async def reverse_geocode(self, lat: float, lng: float) -> str | None:
        return None


class RecordingSink:
    def __init__(self):
        self.events: list[SSEEvent] = []

    def emit(self, event: SSEEvent) -> None:
        self.events.append(event)

    def of(self, event_type: EventType) -> list[SSEEvent]:
        return [e for e in self.events if e.event == event_type]


class StaticProvider(BaseSearchProvider):
    """Returns canned results for every query."""

    def __init__(self, results: list[tuple[str, str, str]], *, name: str = "static", priority: int = 1, **kwargs):
        kwargs.setdefault("min_interval", 0)
        super().__init__(**kwargs)
        self.name = name
        self.display_name = name.title()
        self.priority = priority
        self.canned = results
        self.queries: list[str] = []

    async def _search(self, query: str, *, max_results: int) -> list[SearchResult]:
        self.queries.append(query)
        return [self._result(title, url, snippet) for title, url, snippet in self.canned]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        log_to_file=False,
        job_delay_seconds=0,
        geocode_delay_seconds=0,
        scrape_min_interval=0,
        duckduckgo_min_interval=0,
        bing_min_interval=0,
        google_min_interval=0,
        brave_min_interval=0,
        enable_duckduckgo=False,
        bing_api_key="",
        google_api_key="",
        google_cx="",
        brave_api_key="",
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def fake_nlp() -> FakeNLP:
    return FakeNLP()


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder({"springfield": (39.7817, -89.6501)})
