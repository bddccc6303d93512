from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from opera.api.deps import get_pipeline
from opera.models.schemas import ProviderInfo
from opera.services.pipeline import Pipeline

router = APIRouter(prefix="/api", tags=["jobs"])


@router.get("/jobs")
async def job_status(pipeline: Pipeline = Depends(get_pipeline)):
    return pipeline.job_queue.get_status()


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    job = pipeline.job_queue.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()


@router.get("/providers", response_model=list[ProviderInfo])
async def list_providers(pipeline: Pipeline = Depends(get_pipeline)):
    return [
        ProviderInfo(name=p["name"], display_name=p["displayName"], priority=p["priority"])
        for p in pipeline.search.available_providers()
    ]
