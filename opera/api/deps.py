from __future__ import annotations

from fastapi import HTTPException, Request

from opera.models.project import Project
from opera.services.errors import (
    CycleAlreadyRunning,
    GeocodingFailed,
    InvalidReviewId,
    OperaError,
    ReviewAlreadyProcessed,
    ReviewNotFound,
)
from opera.services.pipeline import Pipeline


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


def require_project(pipeline: Pipeline, project_id: str) -> Project:
    project = pipeline.store.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def http_error(error: OperaError) -> HTTPException:
    """Map a pipeline validation error to its HTTP status."""
    if isinstance(error, ReviewNotFound):
        status = 404
    elif isinstance(error, (ReviewAlreadyProcessed, CycleAlreadyRunning)):
        status = 409
    elif isinstance(error, (InvalidReviewId, GeocodingFailed)):
        status = 422
    else:
        status = 400
    return HTTPException(status_code=status, detail=error.user_message)
