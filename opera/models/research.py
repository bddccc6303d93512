from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar
from uuid import uuid4

from opera.models.project import Coordinates, ProjectItem


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FindingType(str, Enum):
    ENTITY = "entity"
    ORGANIZATION = "organization"
    LOCATION = "location"
    KEYWORD = "keyword"


# --- Findings (one variant per kind, each carrying only its own fields) ---


@dataclass(slots=True)
class EntityFinding:
    name: str
    source_url: str = ""
    context: str = ""
    confidence: float = 1.0
    kind: ClassVar[FindingType] = FindingType.ENTITY


@dataclass(slots=True)
class OrganizationFinding:
    name: str
    source_url: str = ""
    context: str = ""
    confidence: float = 1.0
    kind: ClassVar[FindingType] = FindingType.ORGANIZATION


@dataclass(slots=True)
class LocationFinding:
    name: str
    address: str | None = None
    coordinates: Coordinates | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    bbox: list[float] | None = None  # [south, north, west, east]
    source_url: str = ""
    context: str = ""
    confidence: float = 1.0
    kind: ClassVar[FindingType] = FindingType.LOCATION

    @property
    def geocoded(self) -> bool:
        return self.coordinates is not None


@dataclass(slots=True)
class KeywordFinding:
    name: str
    source_url: str = ""
    context: str = ""
    confidence: float = 1.0
    kind: ClassVar[FindingType] = FindingType.KEYWORD


Finding = EntityFinding | OrganizationFinding | LocationFinding | KeywordFinding


def finding_to_dict(finding: Finding) -> dict[str, Any]:
    """Serialize the extracted fields of a finding (no provenance)."""
    data: dict[str, Any] = {"name": finding.name}
    if isinstance(finding, LocationFinding):
        data["address"] = finding.address
        data["coordinates"] = (
            finding.coordinates.model_dump() if finding.coordinates else None
        )
        for key in ("city", "state", "country", "bbox"):
            value = getattr(finding, key)
            if value:
                data[key] = value
    return data


# --- Search / sources ---


@dataclass(slots=True)
class SearchQuery:
    query: str
    items: list[ProjectItem]
    priority: int = 1
    strategy: str = "pairwise"


@dataclass(slots=True)
class SourceRecord:
    url: str
    title: str = ""
    snippet: str = ""
    provider: str = ""
    provider_name: str = ""
    full_text: str | None = None
    credibility_score: float = 5.0  # 0-10
    source_type: str = "web"  # web | news | public_record
    cycle_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    discovered_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class CrossReferenceResult:
    finding: Finding
    matched_item: ProjectItem | None
    confidence: float
    is_new: bool


# --- Review queue ---


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(slots=True)
class ReviewItem:
    project_id: str
    finding: Finding
    confidence: float  # 0-10, one decimal
    source_url: str = ""
    context_snippet: str = ""
    status: ReviewStatus = ReviewStatus.PENDING
    cycle_id: str | None = None
    scraped_from: str | None = None
    id: str = field(default_factory=lambda: f"review-{uuid4().hex[:12]}")
    created_at: str = field(default_factory=utc_now)
    reviewed_at: str | None = None
    reviewed_by: str | None = None
    item_id: str | None = None

    @property
    def reviewed(self) -> bool:
        return self.status is not ReviewStatus.PENDING

    @property
    def finding_type(self) -> FindingType:
        return self.finding.kind

    @property
    def name(self) -> str:
        return self.finding.name

    @property
    def extracted_data(self) -> dict[str, Any]:
        return finding_to_dict(self.finding)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "findingType": self.finding_type.value,
            "name": self.name,
            "extractedData": self.extracted_data,
            "sourceUrl": self.source_url,
            "confidence": self.confidence,
            "contextSnippet": self.context_snippet,
            "status": self.status.value,
            "reviewed": self.reviewed,
            "scrapedFrom": self.scraped_from,
        }


# --- Research cycles ---


class CycleStatus(str, Enum):
    GENERATING_QUERIES = "generating_queries"
    SEARCHING = "searching"
    SCRAPING = "scraping"
    EXTRACTING = "extracting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class ResearchCycle:
    project_id: str
    cycle_number: int
    status: CycleStatus = CycleStatus.GENERATING_QUERIES
    sources_found: int = 0
    findings_queued: int = 0
    query_count: int = 0
    error: str | None = None
    started_by: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    started_at: str = field(default_factory=utc_now)
    completed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "cycleNumber": self.cycle_number,
            "status": self.status.value,
            "queryCount": self.query_count,
            "sourcesFound": self.sources_found,
            "findingsQueued": self.findings_queued,
            "error": self.error,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
        }


@dataclass(slots=True)
class SearchQueryLog:
    project_id: str
    cycle_id: str
    query_string: str
    item_names: list[str]
    status: str = "searching"  # searching | completed | failed
    results_count: int = 0
    providers: list[str] = field(default_factory=list)
    error_message: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    started_at: str = field(default_factory=utc_now)
    completed_at: str | None = None
