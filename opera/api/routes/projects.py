from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from opera.api.deps import get_pipeline, require_project
from opera.models.project import ProjectItem
from opera.models.schemas import ItemCreateRequest, ProjectCreateRequest, ProjectResponse
from opera.services import streaming
from opera.services.pipeline import Pipeline

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.post("", response_model=ProjectResponse)
async def create_project(request: ProjectCreateRequest, pipeline: Pipeline = Depends(get_pipeline)):
    if pipeline.store.find_project(request.name) is not None:
        raise HTTPException(status_code=409, detail="Project already exists")
    project = pipeline.store.create_project(request.name, created_by=request.user_id)
    return ProjectResponse(**project.model_dump())


@router.get("", response_model=list[ProjectResponse])
async def list_projects(pipeline: Pipeline = Depends(get_pipeline)):
    return [ProjectResponse(**p.model_dump()) for p in pipeline.store.list_projects()]


@router.get("/{project_id}/items", response_model=list[ProjectItem])
async def list_items(project_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    require_project(pipeline, project_id)
    return await pipeline.store.get_items(project_id)


@router.post("/{project_id}/items", response_model=ProjectItem)
async def add_item(project_id: str, request: ItemCreateRequest, pipeline: Pipeline = Depends(get_pipeline)):
    require_project(pipeline, project_id)
    try:
        item = ProjectItem(
            name=request.name,
            type=request.type,
            description=request.description,
            coords=request.coords,
            data=request.data,
            added_by=request.user_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    item = await pipeline.store.add_item(project_id, item)
    items = await pipeline.store.get_items(project_id)
    pipeline.sink.emit(streaming.project_items(project_id, [i.model_dump() for i in items]))
    return item
