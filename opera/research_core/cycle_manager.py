from __future__ import annotations

import asyncio
import re

from loguru import logger

from opera.config import Settings, settings as default_settings
from opera.models.project import ProjectItem
from opera.models.research import (
    CrossReferenceResult,
    CycleStatus,
    EntityFinding,
    Finding,
    KeywordFinding,
    LocationFinding,
    OrganizationFinding,
    ResearchCycle,
    SearchQuery,
    SourceRecord,
    utc_now,
)
from opera.research_core.cross_reference import CrossReferencer, deduplicate_findings
from opera.research_core.extract.entities import EntityExtractor
from opera.research_core.extract.locations import LocationExtractor
from opera.research_core.queries import QueryGenerator
from opera.research_core.repository import ResearchRepository
from opera.research_core.review_queue import ReviewQueue
from opera.services import streaming
from opera.services.errors import CycleAlreadyRunning
from opera.services.event_bus import EventSink, NullSink
from opera.services.logger import log_research_step
from opera.services.project_store import ProjectStore
from opera.tools.search_provider import SearchAggregator, normalize_url
from opera.tools.web_scraper import WebScraper
from opera.tools.web_utils import context_snippet


NAME_PAIR = re.compile(r"\b([A-Z][a-z]+ [A-Z][a-z]+)\b")
PLACE_PHRASE = re.compile(r"\b(?:in|at|from|near)\s+([A-Z][a-z]+(?:,\s*[A-Z]{2})?)")
MAX_SNIPPET_MATCHES = 2
SNIPPET_CONTEXT_CHARS = 200


def snippet_findings(source: SourceRecord) -> list[Finding]:
    """Findings from a search result's snippet, for sources whose page gave no text.

    Name pairs become entities and "in <City, ST>" phrases ungeocoded
    locations. With neither, the page title is kept as a keyword tied to the
    URL so a reviewer can still ask for the page to be scraped.
    """
    text = re.sub(r"<[^>]*>", " ", re.sub(r"&[a-z]+;", " ", source.snippet or "", flags=re.I))
    context = (source.snippet or "")[:SNIPPET_CONTEXT_CHARS]
    findings: list[Finding] = []
    for name in NAME_PAIR.findall(text)[:MAX_SNIPPET_MATCHES]:
        findings.append(EntityFinding(name=name, source_url=source.url, context=context))
    for place in PLACE_PHRASE.findall(text)[:MAX_SNIPPET_MATCHES]:
        findings.append(
            LocationFinding(
                name=place.split(",")[0].strip(),
                address=place,
                source_url=source.url,
                context=context,
            )
        )
    if not findings and source.title.strip():
        findings.append(KeywordFinding(name=source.title.strip(), source_url=source.url, context=context))
    return findings


class CycleManager:
    """Runs research cycles, at most one active cycle per project.

    A cycle walks generating_queries -> searching -> scraping -> extracting
    -> completed, or ends in failed. Every step is awaited in order and the
    project's active marker is released however the cycle ends.
    """

    def __init__(
        self,
        *,
        store: ProjectStore,
        search: SearchAggregator,
        scraper: WebScraper,
        entity_extractor: EntityExtractor,
        location_extractor: LocationExtractor,
        review_queue: ReviewQueue,
        repository: ResearchRepository | None = None,
        query_generator: QueryGenerator | None = None,
        cross_referencer: CrossReferencer | None = None,
        sink: EventSink | None = None,
        config: Settings | None = None,
    ):
        self.config = config or default_settings
        self.store = store
        self.search = search
        self.scraper = scraper
        self.entity_extractor = entity_extractor
        self.location_extractor = location_extractor
        self.review_queue = review_queue
        self.repository = repository or ResearchRepository()
        self.query_generator = query_generator or QueryGenerator(self.config)
        self.cross_referencer = cross_referencer or CrossReferencer(self.config)
        self.sink = sink or NullSink()
        self._active: dict[str, ResearchCycle] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    # --- state ---

    def is_active(self, project_id: str) -> bool:
        return project_id in self._active

    def active_cycle(self, project_id: str) -> ResearchCycle | None:
        return self._active.get(project_id)

    def latest_cycle(self, project_id: str) -> ResearchCycle | None:
        return self._active.get(project_id) or self.repository.latest_cycle(project_id)

    # --- entry points ---

    def start_cycle(self, project_id: str, user_id: str | None = None) -> ResearchCycle:
        """Claim the project and schedule a cycle in the background."""
        if project_id in self._active:
            raise CycleAlreadyRunning()
        cycle = self.repository.create_cycle(project_id, started_by=user_id)
        self._active[project_id] = cycle
        log_research_step(project_id, "cycle", "started", {"cycle_id": cycle.id, "number": cycle.cycle_number})
        self.sink.emit(streaming.cycle_started(cycle, user_id=user_id))

        task = asyncio.create_task(self._execute(cycle, user_id))
        self._tasks[cycle.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(cycle.id, None))
        return cycle

    async def run_cycle(self, project_id: str, user_id: str | None = None) -> ResearchCycle:
        cycle = self.start_cycle(project_id, user_id)
        task = self._tasks.get(cycle.id)
        if task is not None:
            await task
        return cycle

    async def wait(self) -> None:
        """Wait for every running cycle to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    # --- pipeline ---

    async def _execute(self, cycle: ResearchCycle, user_id: str | None) -> None:
        try:
            await self._run_steps(cycle, user_id)
        except Exception as e:
            self._fail(cycle, e, user_id)
        finally:
            if self._active.get(cycle.project_id) is cycle:
                del self._active[cycle.project_id]

    async def _run_steps(self, cycle: ResearchCycle, user_id: str | None) -> None:
        project_id = cycle.project_id

        # 1. queries
        self._advance(cycle, CycleStatus.GENERATING_QUERIES)
        items = await self.store.get_items(project_id)
        queries = self.query_generator.generate(items)
        cycle.query_count = len(queries)
        self.sink.emit(streaming.query_generation_complete(cycle, len(queries), user_id=user_id))
        if not queries:
            self._complete(cycle, user_id, message="No queries to execute")
            return

        # 2. search
        self._advance(cycle, CycleStatus.SEARCHING)
        sources = await self._search(cycle, queries[: self.config.max_search_queries], user_id)
        cycle.sources_found = len(sources)
        if not sources:
            self._complete(cycle, user_id, message="No sources found")
            return

        # 3. scrape
        self._advance(cycle, CycleStatus.SCRAPING)
        texts = await self._scrape(sources)

        # 4. extract, cross-reference and queue
        self._advance(cycle, CycleStatus.EXTRACTING)
        findings = await self._extract(texts)
        for source in sources:
            if source.url not in texts:
                findings.extend(snippet_findings(source))
        findings = deduplicate_findings(findings)
        self.sink.emit(streaming.extraction_complete(cycle, len(findings), user_id=user_id))

        items = await self.store.get_items(project_id)
        results = self.cross_referencer.run(
            findings,
            items,
            sources={s.url: s for s in sources},
            texts=texts,
        )
        cycle.findings_queued = self._enqueue(cycle, results, items)

        self._complete(cycle, user_id)
        if cycle.findings_queued:
            self.review_queue.publish(project_id)

    async def _search(
        self, cycle: ResearchCycle, queries: list[SearchQuery], user_id: str | None
    ) -> list[SourceRecord]:
        sources: dict[str, SourceRecord] = {}
        for query in queries:
            entry = self.repository.log_query(
                cycle.project_id, cycle.id, query.query, [item.name for item in query.items]
            )
            try:
                results = await self.search.search_all(query.query, max_results=self.config.search_max_results)
            except Exception as e:
                self.repository.fail_query(entry, str(e))
                raise

            for result in results:
                key = normalize_url(result.url)
                if not key or key in sources:
                    continue
                source = SourceRecord(
                    url=result.url,
                    title=result.title,
                    snippet=result.snippet,
                    provider=result.provider,
                    provider_name=result.provider_name,
                    credibility_score=self.config.default_source_credibility,
                    cycle_id=cycle.id,
                )
                sources[key] = source
                self.repository.save_source(source)

            self.repository.complete_query(
                entry,
                results_count=len(results),
                providers=sorted({r.provider for r in results}),
            )
            self.sink.emit(streaming.searching(cycle, query.query, len(results), len(sources), user_id=user_id))
            logger.info(f"Query {query.query!r}: {len(results)} results, {len(sources)} unique sources so far")
        return list(sources.values())

    async def _scrape(self, sources: list[SourceRecord]) -> dict[str, str]:
        texts: dict[str, str] = {}
        for source in sources:
            if not self.scraper.is_scrapeable(source.url):
                logger.debug(f"Skipping unscrapeable source {source.url}")
                continue
            async with self.scraper.limiter:
                page = await self.scraper.scrape_url(source.url, timeout_ms=self.config.cycle_scrape_timeout)
            if page is None or not page.ok:
                reason = page.failure_reason if page is not None else "no_content"
                logger.info(f"Skipping source {source.url}: {reason}")
                continue
            source.full_text = (page.content or "")[: self.config.source_full_text_max_chars]
            if page.title and not source.title:
                source.title = page.title
            self.repository.save_source(source)
            texts[source.url] = source.full_text
        logger.info(f"Scraped {len(texts)}/{len(sources)} sources")
        return texts

    async def _extract(self, texts: dict[str, str]) -> list[Finding]:
        width = self.config.context_snippet_length
        findings: list[Finding] = []
        for url, text in texts.items():
            extracted = self.entity_extractor.extract_from_text(text, url)
            for name in extracted.people:
                findings.append(EntityFinding(name=name, source_url=url, context=context_snippet(text, name, width)))
            for name in extracted.organizations:
                findings.append(
                    OrganizationFinding(name=name, source_url=url, context=context_snippet(text, name, width))
                )
            for location in await self.location_extractor.extract_and_geocode(text, url):
                if location.confidence != "high":
                    continue
                context = context_snippet(text, location.address or location.name, width)
                if not context:
                    context = context_snippet(text, location.name, width)
                findings.append(location.to_finding(source_url=url, context=context))
        return findings

    def _enqueue(
        self, cycle: ResearchCycle, results: list[CrossReferenceResult], items: list[ProjectItem]
    ) -> int:
        queued = 0
        for result in results:
            if not result.is_new or result.confidence < self.config.min_review_confidence:
                continue
            if self.review_queue.is_duplicate(cycle.project_id, result.finding, items):
                continue
            self.review_queue.enqueue(cycle.project_id, result.finding, result.confidence, cycle_id=cycle.id)
            queued += 1
        return queued

    # --- transitions ---

    def _advance(self, cycle: ResearchCycle, status: CycleStatus) -> None:
        cycle.status = status
        self.repository.save_cycle(cycle)
        log_research_step(cycle.project_id, status.value, "running", {"cycle_id": cycle.id})

    def _complete(self, cycle: ResearchCycle, user_id: str | None, *, message: str | None = None) -> None:
        cycle.status = CycleStatus.COMPLETED
        cycle.completed_at = utc_now()
        self.repository.save_cycle(cycle)
        log_research_step(
            cycle.project_id,
            "cycle",
            "completed",
            {
                "cycle_id": cycle.id,
                "queries": cycle.query_count,
                "sources": cycle.sources_found,
                "queued": cycle.findings_queued,
                "message": message,
            },
        )
        self.sink.emit(streaming.cycle_complete(cycle, message=message, user_id=user_id))

    def _fail(self, cycle: ResearchCycle, error: Exception, user_id: str | None) -> None:
        cycle.status = CycleStatus.FAILED
        cycle.error = str(error) or type(error).__name__
        cycle.completed_at = utc_now()
        self.repository.save_cycle(cycle)
        logger.exception(f"Research cycle {cycle.id} failed")
        log_research_step(cycle.project_id, "cycle", "failed", {"cycle_id": cycle.id, "error": cycle.error})
        self.sink.emit(streaming.cycle_failed(cycle, cycle.error, user_id=user_id))
