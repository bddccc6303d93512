from __future__ import annotations

from fastapi import APIRouter, Depends

from opera.api.deps import get_pipeline, require_project
from opera.commands import CommandContext, CommandHandler
from opera.models.schemas import CommandRequest, CommandResponse
from opera.services.pipeline import Pipeline

router = APIRouter(prefix="/api/projects", tags=["commands"])


@router.post("/{project_id}/commands", response_model=CommandResponse)
async def run_command(project_id: str, request: CommandRequest, pipeline: Pipeline = Depends(get_pipeline)):
    """Run a chat command; the acknowledgement is returned and also streamed."""
    require_project(pipeline, project_id)
    ctx = CommandContext(user_id=request.user_id, project_id=project_id)
    ack = await CommandHandler(pipeline).handle(ctx, request.text)
    return CommandResponse(event=ack.event.value, message=ack.data["message"])
