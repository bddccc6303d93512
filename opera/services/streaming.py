from __future__ import annotations

from typing import Any

from opera.models.events import EventType, SSEEvent
from opera.models.research import ResearchCycle, ReviewItem


def chat(message: str, *, project_id: str | None = None, user_id: str | None = None) -> SSEEvent:
    return SSEEvent(
        event=EventType.CHAT,
        data={"message": message},
        project_id=project_id,
        user_id=user_id,
    )


def notif(message: str, *, project_id: str | None = None, user_id: str | None = None) -> SSEEvent:
    return SSEEvent(
        event=EventType.NOTIF,
        data={"message": message},
        project_id=project_id,
        user_id=user_id,
    )


def review_queue(project_id: str, items: list[ReviewItem]) -> SSEEvent:
    """Emit the project's review queue snapshot."""
    return SSEEvent(
        event=EventType.REVIEW_QUEUE,
        data={
            "projectId": project_id,
            "findings": [
                {
                    "id": item.id,
                    "findingType": item.finding_type.value,
                    "name": item.name,
                    "sourceUrl": item.source_url,
                    "confidence": item.confidence,
                    "contextSnippet": item.context_snippet,
                    "status": item.status.value,
                }
                for item in items
            ],
        },
        project_id=project_id,
    )


def review_updated(item: ReviewItem) -> SSEEvent:
    return SSEEvent(
        event=EventType.REVIEW_UPDATED,
        data={"reviewId": item.id, "status": item.status.value},
        project_id=item.project_id,
    )


def cycle_started(cycle: ResearchCycle, *, user_id: str | None = None) -> SSEEvent:
    return SSEEvent(
        event=EventType.CYCLE_STARTED,
        data={"cycle": cycle.to_dict()},
        project_id=cycle.project_id,
        user_id=user_id,
    )


def query_generation_complete(
    cycle: ResearchCycle, query_count: int, *, user_id: str | None = None
) -> SSEEvent:
    return SSEEvent(
        event=EventType.QUERY_GENERATION_COMPLETE,
        data={"cycleId": cycle.id, "queryCount": query_count},
        project_id=cycle.project_id,
        user_id=user_id,
    )


def searching(
    cycle: ResearchCycle,
    query: str,
    results_found: int,
    total_sources: int,
    *,
    user_id: str | None = None,
) -> SSEEvent:
    return SSEEvent(
        event=EventType.SEARCHING,
        data={
            "cycleId": cycle.id,
            "query": query,
            "resultsFound": results_found,
            "totalSources": total_sources,
        },
        project_id=cycle.project_id,
        user_id=user_id,
    )


def extraction_complete(
    cycle: ResearchCycle, finding_count: int, *, user_id: str | None = None
) -> SSEEvent:
    return SSEEvent(
        event=EventType.EXTRACTION_COMPLETE,
        data={"cycleId": cycle.id, "findingCount": finding_count},
        project_id=cycle.project_id,
        user_id=user_id,
    )


def cycle_complete(
    cycle: ResearchCycle, *, message: str | None = None, user_id: str | None = None
) -> SSEEvent:
    data: dict[str, Any] = {
        "cycle": cycle.to_dict(),
        "sourcesFound": cycle.sources_found,
        "findingsQueued": cycle.findings_queued,
    }
    if message:
        data["message"] = message
    return SSEEvent(
        event=EventType.CYCLE_COMPLETE,
        data=data,
        project_id=cycle.project_id,
        user_id=user_id,
    )


def cycle_failed(cycle: ResearchCycle, error: str, *, user_id: str | None = None) -> SSEEvent:
    return SSEEvent(
        event=EventType.CYCLE_FAILED,
        data={"cycle": cycle.to_dict(), "error": error},
        project_id=cycle.project_id,
        user_id=user_id,
    )


def job_event(event: EventType, job: dict[str, Any]) -> SSEEvent:
    """Emit a job lifecycle event scoped to the job's project when it has one."""
    data = job.get("data") or {}
    return SSEEvent(
        event=event,
        data={"job": job},
        project_id=data.get("projectId"),
        user_id=data.get("userId"),
    )


def project_items(project_id: str, items: list[dict[str, Any]]) -> SSEEvent:
    return SSEEvent(
        event=EventType.PROJECT,
        data={"projectId": project_id, "items": items},
        project_id=project_id,
    )
