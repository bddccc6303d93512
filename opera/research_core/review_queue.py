from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from opera.config import Settings, settings as default_settings
from opera.models.events import SSEEvent
from opera.models.project import ItemType, ProjectItem
from opera.models.research import (
    EntityFinding,
    Finding,
    KeywordFinding,
    LocationFinding,
    OrganizationFinding,
    ReviewItem,
    ReviewStatus,
    utc_now,
)
from opera.research_core.extract.entities import are_entities_same
from opera.research_core.extract.locations import are_locations_same
from opera.services import streaming
from opera.services.errors import (
    GeocodingFailed,
    InvalidReviewId,
    ReviewAlreadyProcessed,
    ReviewNotFound,
)
from opera.services.event_bus import EventSink, NullSink
from opera.services.project_store import ProjectStore
from opera.tools.geocoder import Geocoder
from opera.tools.web_utils import is_scrapeable

if TYPE_CHECKING:
    from opera.services.job_queue import Job, JobQueue

SCRAPE_JOB_TYPE = "scrape-approved-finding"


@dataclass(slots=True)
class ReviewOutcome:
    review: ReviewItem
    item: ProjectItem | None = None
    job: "Job | None" = None


def _is_page_trigger(review: ReviewItem) -> bool:
    """A keyword sourced from a real web page only asks for that page to be scraped."""
    return isinstance(review.finding, KeywordFinding) and review.source_url.startswith("http")


def _same_finding(finding: Finding, other: Finding) -> bool:
    if finding.kind != other.kind:
        return False
    name = finding.name.lower().strip()
    if name and name == other.name.lower().strip():
        return True
    match finding:
        case EntityFinding() | OrganizationFinding():
            return are_entities_same(finding.name, other.name)
        case LocationFinding():
            return are_locations_same(finding.name, other.name)
    return False


def _matches_item(finding: Finding, item: ProjectItem) -> bool:
    name = finding.name.lower().strip()
    if item.type.value == finding.kind.value and item.name == name:
        return True
    match finding:
        case EntityFinding() | OrganizationFinding():
            return item.type in (ItemType.ENTITY, ItemType.ORGANIZATION) and are_entities_same(
                item.name, finding.name
            )
        case LocationFinding():
            return item.type == ItemType.LOCATION and are_locations_same(item.name, finding.name)
    return False


class ReviewQueue:
    """Findings awaiting human approval, shared by every project in the process.

    Each review item moves from pending to approved or rejected exactly once.
    State is re-checked right before it is mutated, including after the
    geocoding await in location approval.
    """

    def __init__(
        self,
        store: ProjectStore,
        geocoder: Geocoder,
        *,
        job_queue: "JobQueue | None" = None,
        sink: EventSink | None = None,
        config: Settings | None = None,
    ):
        self.store = store
        self.geocoder = geocoder
        self.job_queue = job_queue
        self.sink = sink or NullSink()
        self.config = config or default_settings
        self._items: list[ReviewItem] = []

    # --- queries ---

    def items(self, project_id: str) -> list[ReviewItem]:
        return [r for r in self._items if r.project_id == project_id]

    def pending(self, project_id: str) -> list[ReviewItem]:
        return [r for r in self._items if r.project_id == project_id and not r.reviewed]

    def get(self, project_id: str, ref: str | int) -> ReviewItem:
        """Resolve a review id, or a 1-based position among pending items."""
        ref = str(ref).strip()
        if not ref:
            raise InvalidReviewId()
        if ref.isdigit():
            index = int(ref)
            pending = self.pending(project_id)
            if index < 1:
                raise InvalidReviewId()
            if index > len(pending):
                raise ReviewNotFound()
            return pending[index - 1]
        for review in self._items:
            if review.id == ref and review.project_id == project_id:
                return review
        raise ReviewNotFound()

    def snapshot(self, project_id: str) -> SSEEvent:
        return streaming.review_queue(project_id, self.pending(project_id))

    def publish(self, project_id: str) -> None:
        self.sink.emit(self.snapshot(project_id))

    def is_duplicate(self, project_id: str, finding: Finding, existing_items: list[ProjectItem]) -> bool:
        """True when the finding matches a project item or any review item of the project."""
        if any(_matches_item(finding, item) for item in existing_items):
            return True
        return any(_same_finding(finding, review.finding) for review in self.items(project_id))

    # --- mutations ---

    def enqueue(
        self,
        project_id: str,
        finding: Finding,
        confidence: float,
        context: str = "",
        source_url: str = "",
        *,
        cycle_id: str | None = None,
        scraped_from: str | None = None,
    ) -> ReviewItem:
        """Add a pending review item; ``confidence`` is 0-1 and stored on the 0-10 scale."""
        review = ReviewItem(
            project_id=project_id,
            finding=finding,
            confidence=round(max(0.0, min(confidence, 1.0)) * 10, 1),
            source_url=source_url or finding.source_url,
            context_snippet=context or finding.context,
            cycle_id=cycle_id,
            scraped_from=scraped_from,
        )
        self._items.append(review)
        logger.info(
            f"Queued {review.finding_type.value} finding for review: {review.name!r} "
            f"(confidence {review.confidence}, project {project_id})"
        )
        return review

    async def approve(self, project_id: str, ref: str | int, *, user_id: str | None = None) -> ReviewOutcome:
        review = self.get(project_id, ref)
        if review.reviewed:
            raise ReviewAlreadyProcessed()

        finding = review.finding
        if isinstance(finding, LocationFinding) and finding.coordinates is None:
            finding = await self._geocode(finding)
            # the item may have been processed while we were geocoding
            if review.reviewed:
                raise ReviewAlreadyProcessed()
            review.finding = finding

        self._mark(review, ReviewStatus.APPROVED, user_id)
        try:
            item = await self._promote(review, user_id)
        except Exception as e:
            logger.error(f"Approval of {review.id} rolled back, item not saved: {e}")
            # nothing was added, so the finding can be approved again
            review.status = ReviewStatus.PENDING
            review.reviewed_at = None
            review.reviewed_by = None
            raise
        if item is not None:
            review.item_id = item.id
        job = self._schedule_scrape(review, user_id)

        logger.info(
            f"Finding approved: {review.id} {review.finding_type.value} {review.name!r} "
            f"item={review.item_id} job={job.id if job else None}"
        )
        self.sink.emit(streaming.review_updated(review))
        self.publish(project_id)
        return ReviewOutcome(review=review, item=item, job=job)

    async def reject(self, project_id: str, ref: str | int, *, user_id: str | None = None) -> ReviewOutcome:
        review = self.get(project_id, ref)
        if review.reviewed:
            raise ReviewAlreadyProcessed()
        self._mark(review, ReviewStatus.REJECTED, user_id)
        logger.info(f"Finding rejected: {review.id} {review.name!r}")
        self.sink.emit(streaming.review_updated(review))
        self.publish(project_id)
        return ReviewOutcome(review=review)

    def _mark(self, review: ReviewItem, status: ReviewStatus, user_id: str | None) -> None:
        review.status = status
        review.reviewed_at = utc_now()
        review.reviewed_by = user_id

    async def _geocode(self, finding: LocationFinding) -> LocationFinding:
        query = finding.address or finding.name
        results = await self.geocoder.geocode(query)
        if not results:
            logger.warning(f"Approval aborted, could not geocode {query!r}")
            raise GeocodingFailed()
        best = results[0]
        return LocationFinding(
            name=finding.name,
            address=finding.address or best.address,
            coordinates=best.coords,
            city=best.city,
            state=best.state,
            country=best.country,
            bbox=best.bbox,
            source_url=finding.source_url,
            context=finding.context,
            confidence=finding.confidence,
        )

    async def _promote(self, review: ReviewItem, user_id: str | None) -> ProjectItem | None:
        finding = review.finding
        provenance = {"source": review.source_url, "discovered_via": "osint", "review_id": review.id}
        match finding:
            case LocationFinding():
                item = ProjectItem(
                    name=finding.name,
                    type=ItemType.LOCATION,
                    coords=finding.coordinates,
                    bbox=finding.bbox,
                    data={"address": finding.address or finding.name, **provenance},
                    added_by=user_id,
                )
            case EntityFinding():
                item = ProjectItem(name=finding.name, type=ItemType.ENTITY, data=provenance, added_by=user_id)
            case OrganizationFinding():
                item = ProjectItem(
                    name=finding.name, type=ItemType.ORGANIZATION, data=provenance, added_by=user_id
                )
            case KeywordFinding():
                if _is_page_trigger(review):
                    return None
                item = ProjectItem(name=finding.name, type=ItemType.KEYWORD, data=provenance, added_by=user_id)
        return await self.store.add_item(review.project_id, item)

    def _should_scrape(self, review: ReviewItem) -> bool:
        if self.job_queue is None or not self.config.enable_auto_scraping:
            return False
        if not is_scrapeable(review.source_url):
            return False
        if _is_page_trigger(review):
            return True
        return review.finding_type.value in self.config.auto_scrape_types

    def _schedule_scrape(self, review: ReviewItem, user_id: str | None) -> "Job | None":
        if not self._should_scrape(review):
            return None
        return self.job_queue.add(
            SCRAPE_JOB_TYPE,
            {
                "reviewId": review.id,
                "sourceUrl": review.source_url,
                "projectId": review.project_id,
                "findingType": review.finding_type.value,
                "userId": user_id,
            },
            priority=self.config.scrape_job_priority,
        )


