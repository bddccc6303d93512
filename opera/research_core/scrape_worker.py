from __future__ import annotations

from typing import Any

from loguru import logger

from opera.config import Settings, settings as default_settings
from opera.models.research import EntityFinding, Finding, KeywordFinding, OrganizationFinding
from opera.research_core.extract.entities import EntityExtractor
from opera.research_core.extract.locations import LocationExtractor
from opera.research_core.review_queue import SCRAPE_JOB_TYPE, ReviewQueue
from opera.services.job_queue import Job
from opera.services.project_store import ProjectStore
from opera.tools.web_scraper import WebScraper
from opera.tools.web_utils import context_snippet

# 0-1 confidences for findings discovered by re-scraping an approved source
PERSON_CONFIDENCE = 0.55
ORGANIZATION_CONFIDENCE = 0.55
LOCATION_CONFIDENCE = 0.6
KEYWORD_CONFIDENCE = 0.5

MAX_LOCATIONS_PER_PAGE = 10


def _not_scraped(reason: str, error: str | None = None) -> dict[str, Any]:
    result: dict[str, Any] = {
        "scraped": False,
        "reason": reason,
        "entitiesFound": 0,
        "entitiesAdded": 0,
        "skipped": 0,
    }
    if error:
        result["error"] = error
    return result


class ScrapeWorker:
    """Re-scrapes an approved finding's source and queues what it finds for review."""

    job_type = SCRAPE_JOB_TYPE

    def __init__(
        self,
        *,
        scraper: WebScraper,
        entity_extractor: EntityExtractor,
        location_extractor: LocationExtractor,
        review_queue: ReviewQueue,
        store: ProjectStore,
        config: Settings | None = None,
    ):
        self.scraper = scraper
        self.entity_extractor = entity_extractor
        self.location_extractor = location_extractor
        self.review_queue = review_queue
        self.store = store
        self.config = config or default_settings

    async def execute(self, data: dict[str, Any], job: Job) -> dict[str, Any]:
        source_url = data.get("sourceUrl")
        project_id = data.get("projectId")
        review_id = data.get("reviewId")
        logger.info(f"Scrape worker started: job={job.id} review={review_id} url={source_url}")

        if not source_url or not isinstance(source_url, str):
            raise ValueError("Invalid source URL")
        if not project_id:
            raise ValueError("Missing project id")
        if not self.scraper.is_scrapeable(source_url):
            return _not_scraped("url_not_scrapeable")

        async with self.scraper.limiter:
            page = await self.scraper.scrape_url(source_url, timeout_ms=self.config.scraping_timeout)
        if page is None:
            return _not_scraped("no_content")
        if page.blocked:
            return _not_scraped("blocked", page.error or "Blocked by anti-bot protection")
        if not page.ok:
            logger.warning(f"No usable content from {source_url}: {page.failure_reason} {page.error}")
            return _not_scraped(page.failure_reason or "no_content", page.error)

        text = page.content or ""
        extracted = self.entity_extractor.extract_from_text(text, source_url)
        locations = await self.location_extractor.extract_and_geocode(text, source_url)
        existing = await self.store.get_items(project_id)

        per_page = self.config.max_entities_per_page
        candidates: list[tuple[str, Finding, float]] = []
        candidates += [("people", EntityFinding(name=p), PERSON_CONFIDENCE) for p in extracted.people[:per_page]]
        candidates += [
            ("organizations", OrganizationFinding(name=o), ORGANIZATION_CONFIDENCE)
            for o in extracted.organizations[:per_page]
        ]
        geocoded = [loc for loc in locations if loc.confidence == "high"][:MAX_LOCATIONS_PER_PAGE]
        candidates += [("locations", loc.to_finding(), LOCATION_CONFIDENCE) for loc in geocoded]
        candidates += [
            ("keywords", KeywordFinding(name=k), KEYWORD_CONFIDENCE)
            for k in extracted.keywords[: self.config.max_keywords_per_page]
            if len(k) >= 3
        ]

        breakdown = {"people": 0, "organizations": 0, "locations": 0, "keywords": 0}
        skipped = 0
        for bucket, finding, confidence in candidates:
            if self.review_queue.is_duplicate(project_id, finding, existing):
                skipped += 1
                continue
            finding.source_url = source_url
            finding.context = context_snippet(text, finding.name, self.config.context_snippet_length)
            self.review_queue.enqueue(
                project_id,
                finding,
                confidence,
                source_url=source_url,
                scraped_from=review_id,
            )
            breakdown[bucket] += 1

        added = sum(breakdown.values())
        found = (
            len(extracted.people)
            + len(extracted.organizations)
            + len(locations)
            + len(extracted.keywords)
        )
        skipped += found - len(candidates)
        if added:
            self.review_queue.publish(project_id)

        logger.info(
            f"Scrape worker finished for {source_url}: found={found} added={added} "
            f"skipped={skipped} breakdown={breakdown}"
        )
        return {
            "scraped": True,
            "sourceUrl": source_url,
            "entitiesFound": found,
            "entitiesAdded": added,
            "skipped": skipped,
            "breakdown": breakdown,
        }
