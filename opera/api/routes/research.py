from __future__ import annotations

import json as _json

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from opera.api.deps import get_pipeline, http_error, require_project
from opera.models.research import ResearchCycle
from opera.models.schemas import CycleResponse, ResearchStartRequest, ResearchStatusResponse
from opera.services import logger as log_service
from opera.services.errors import CycleAlreadyRunning
from opera.services.event_bus import EventBus
from opera.services.pipeline import Pipeline

router = APIRouter(prefix="/api/projects", tags=["research"])


def cycle_response(cycle: ResearchCycle) -> CycleResponse:
    return CycleResponse(
        id=cycle.id,
        project_id=cycle.project_id,
        cycle_number=cycle.cycle_number,
        status=cycle.status.value,
        query_count=cycle.query_count,
        sources_found=cycle.sources_found,
        findings_queued=cycle.findings_queued,
        error=cycle.error,
        started_at=cycle.started_at,
        completed_at=cycle.completed_at,
    )


@router.post("/{project_id}/research", response_model=CycleResponse, status_code=202)
async def start_research(
    project_id: str,
    request: ResearchStartRequest | None = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Start a research cycle; progress is streamed on ``/stream``."""
    require_project(pipeline, project_id)
    user_id = request.user_id if request else None
    try:
        cycle = pipeline.cycles.start_cycle(project_id, user_id)
    except CycleAlreadyRunning as e:
        raise http_error(e) from e
    return cycle_response(cycle)


@router.get("/{project_id}/research/status", response_model=ResearchStatusResponse)
async def research_status(project_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    require_project(pipeline, project_id)
    cycle = pipeline.cycles.latest_cycle(project_id)
    return ResearchStatusResponse(
        active=pipeline.cycles.is_active(project_id),
        cycle=cycle_response(cycle) if cycle else None,
        pending_reviews=len(pipeline.review_queue.pending(project_id)),
    )


@router.get("/{project_id}/stream")
async def stream_project(
    project_id: str,
    user_id: str | None = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """SSE endpoint that streams pipeline events for one project."""
    require_project(pipeline, project_id)
    bus = pipeline.sink
    if not isinstance(bus, EventBus):
        raise HTTPException(status_code=503, detail="Event streaming is not available")

    sub = bus.subscribe(project_id=project_id, user_id=user_id)
    log_service.log_event(
        event_type="stream_opened",
        message="Project stream opened",
        project_id=project_id,
        user_id=user_id,
        subscribers=bus.subscriber_count,
    )

    async def event_generator():
        snapshot = pipeline.review_queue.snapshot(project_id)
        yield {"event": snapshot.event.value, "data": _json.dumps(snapshot.data, default=str)}
        async for event in bus.listen(sub):
            yield {"event": event.event.value, "data": _json.dumps(event.data, default=str)}

    return EventSourceResponse(event_generator())
