from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from opera.models.project import Coordinates, ItemType


# --- Requests ---


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    user_id: str | None = None


class ItemCreateRequest(BaseModel):
    name: str
    type: ItemType
    description: str | None = None
    coords: Coordinates | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None


class ResearchStartRequest(BaseModel):
    user_id: str | None = None


class ReviewActionRequest(BaseModel):
    user_id: str | None = None


class CommandRequest(BaseModel):
    text: str
    user_id: str | None = None


# --- Responses ---


class ProjectResponse(BaseModel):
    id: str
    name: str
    created_by: str | None
    created_at: str


class CycleResponse(BaseModel):
    id: str
    project_id: str
    cycle_number: int
    status: str
    query_count: int
    sources_found: int
    findings_queued: int
    error: str | None = None
    started_at: str
    completed_at: str | None = None


class ResearchStatusResponse(BaseModel):
    active: bool
    cycle: CycleResponse | None = None
    pending_reviews: int = 0


class ReviewResponse(BaseModel):
    id: str
    project_id: str
    finding_type: str
    name: str
    extracted_data: dict[str, Any]
    source_url: str
    confidence: float
    context_snippet: str
    status: str
    reviewed: bool
    scraped_from: str | None = None


class ReviewActionResponse(BaseModel):
    review: ReviewResponse
    item_id: str | None = None
    job_id: str | None = None


class CommandResponse(BaseModel):
    event: str
    message: str


class ProviderInfo(BaseModel):
    name: str
    display_name: str
    priority: int
