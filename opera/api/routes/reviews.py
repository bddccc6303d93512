from __future__ import annotations

from fastapi import APIRouter, Depends

from opera.api.deps import get_pipeline, http_error, require_project
from opera.models.research import ReviewItem
from opera.models.schemas import ReviewActionRequest, ReviewActionResponse, ReviewResponse
from opera.research_core.review_queue import ReviewOutcome
from opera.services.errors import ReviewError
from opera.services.pipeline import Pipeline

router = APIRouter(tags=["reviews"])


def review_response(review: ReviewItem) -> ReviewResponse:
    return ReviewResponse(
        id=review.id,
        project_id=review.project_id,
        finding_type=review.finding_type.value,
        name=review.name,
        extracted_data=review.extracted_data,
        source_url=review.source_url,
        confidence=review.confidence,
        context_snippet=review.context_snippet,
        status=review.status.value,
        reviewed=review.reviewed,
        scraped_from=review.scraped_from,
    )


def _action_response(outcome: ReviewOutcome) -> ReviewActionResponse:
    return ReviewActionResponse(
        review=review_response(outcome.review),
        item_id=outcome.item.id if outcome.item else None,
        job_id=outcome.job.id if outcome.job else None,
    )


@router.get("/api/projects/{project_id}/reviews", response_model=list[ReviewResponse])
async def list_reviews(project_id: str, status: str | None = None, pipeline: Pipeline = Depends(get_pipeline)):
    require_project(pipeline, project_id)
    reviews = pipeline.review_queue.items(project_id)
    if status:
        reviews = [r for r in reviews if r.status.value == status]
    return [review_response(r) for r in reviews]


@router.post("/api/reviews/{project_id}/{review_id}/approve", response_model=ReviewActionResponse)
async def approve_review(
    project_id: str,
    review_id: str,
    request: ReviewActionRequest | None = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    require_project(pipeline, project_id)
    try:
        outcome = await pipeline.review_queue.approve(
            project_id, review_id, user_id=request.user_id if request else None
        )
    except ReviewError as e:
        raise http_error(e) from e
    return _action_response(outcome)


@router.post("/api/reviews/{project_id}/{review_id}/reject", response_model=ReviewActionResponse)
async def reject_review(
    project_id: str,
    review_id: str,
    request: ReviewActionRequest | None = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    require_project(pipeline, project_id)
    try:
        outcome = await pipeline.review_queue.reject(
            project_id, review_id, user_id=request.user_id if request else None
        )
    except ReviewError as e:
        raise http_error(e) from e
    return _action_response(outcome)
