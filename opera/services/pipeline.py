from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from opera.config import Settings, settings as default_settings
from opera.research_core.cross_reference import CrossReferencer
from opera.research_core.cycle_manager import CycleManager
from opera.research_core.extract.entities import EntityExtractor
from opera.research_core.extract.locations import LocationExtractor
from opera.research_core.queries import QueryGenerator
from opera.research_core.repository import ResearchRepository
from opera.research_core.review_queue import ReviewQueue
from opera.research_core.scrape_worker import ScrapeWorker
from opera.services.event_bus import EventBus, EventSink
from opera.services.job_queue import JobQueue
from opera.services.project_store import InMemoryProjectStore
from opera.tools.geocoder import Geocoder, NominatimGeocoder
from opera.tools.search_provider import SearchAggregator, build_providers
from opera.tools.search_types import BaseSearchProvider
from opera.tools.web_scraper import WebScraper


@dataclass
class Pipeline:
    """Every collaborator of one independent pipeline instance."""

    config: Settings
    sink: EventSink
    store: InMemoryProjectStore
    repository: ResearchRepository
    search: SearchAggregator
    scraper: WebScraper
    geocoder: Geocoder
    entity_extractor: EntityExtractor
    location_extractor: LocationExtractor
    job_queue: JobQueue
    review_queue: ReviewQueue
    cycles: CycleManager


def build_pipeline(
    config: Settings | None = None,
    *,
    sink: EventSink | None = None,
    store: InMemoryProjectStore | None = None,
    providers: list[BaseSearchProvider] | None = None,
    geocoder: Geocoder | None = None,
    nlp: Any = None,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Callable[[float], Any] = asyncio.sleep,
    repository: ResearchRepository | None = None,
) -> Pipeline:
    """Wire a pipeline; any collaborator can be swapped out (tests pass fakes)."""
    config = config or default_settings
    sink = sink or EventBus()
    store = store or InMemoryProjectStore()
    repository = repository or ResearchRepository()
    if providers is None:
        providers = build_providers(config, transport=transport)
    search = SearchAggregator(providers)
    scraper = WebScraper(config, transport=transport)
    geocoder = geocoder or NominatimGeocoder(config, transport=transport)
    entity_extractor = EntityExtractor(nlp=nlp, config=config)
    location_extractor = LocationExtractor(geocoder, nlp=nlp, config=config, sleep=sleep)

    job_queue = JobQueue(sink, config=config)
    review_queue = ReviewQueue(store, geocoder, job_queue=job_queue, sink=sink, config=config)
    worker = ScrapeWorker(
        scraper=scraper,
        entity_extractor=entity_extractor,
        location_extractor=location_extractor,
        review_queue=review_queue,
        store=store,
        config=config,
    )
    job_queue.register_worker(worker.job_type, worker)

    cycles = CycleManager(
        store=store,
        search=search,
        scraper=scraper,
        entity_extractor=entity_extractor,
        location_extractor=location_extractor,
        review_queue=review_queue,
        repository=repository,
        query_generator=QueryGenerator(config),
        cross_referencer=CrossReferencer(config),
        sink=sink,
        config=config,
    )
    return Pipeline(
        config=config,
        sink=sink,
        store=store,
        repository=repository,
        search=search,
        scraper=scraper,
        geocoder=geocoder,
        entity_extractor=entity_extractor,
        location_extractor=location_extractor,
        job_queue=job_queue,
        review_queue=review_queue,
        cycles=cycles,
    )
