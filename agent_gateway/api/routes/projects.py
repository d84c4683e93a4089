"""
Project endpoints
"""

from typing import List

from fastapi import APIRouter, Depends
import structlog

from agent_gateway.api.deps import get_agent_credential, get_projects, get_session_user
from agent_gateway.core.security import as_naive_utc
from agent_gateway.schemas.project import ProjectCreate, ProjectResponse, ProjectStatusUpdate, ProjectSummary
from agent_gateway.services.credentials import AccessCredential
from agent_gateway.services.projects import ProjectService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/projects", response_model=ProjectResponse)
async def create_project(
    request: ProjectCreate,
    user_id: str = Depends(get_session_user),
    projects: ProjectService = Depends(get_projects),
):
    project = projects.create(
        user_id,
        request.name,
        status=request.status,
        due_date=as_naive_utc(request.due_date) if request.due_date else None,
    )
    return ProjectResponse.model_validate(project)


@router.patch("/projects/{project_id}/status", response_model=ProjectResponse)
async def update_project_status(
    project_id: str,
    request: ProjectStatusUpdate,
    user_id: str = Depends(get_session_user),
    projects: ProjectService = Depends(get_projects),
):
    """Moving into or out of review pauses or extends the due date"""
    project = projects.set_status(project_id, user_id, request.status)
    return ProjectResponse.model_validate(project)


@router.get("/agent/projects", response_model=List[ProjectSummary])
async def list_agent_projects(
    auth: AccessCredential = Depends(get_agent_credential),
    projects: ProjectService = Depends(get_projects),
):
    """Agent: projects for the timer start picker"""
    return [ProjectSummary.model_validate(p) for p in projects.list_for_user(auth.user_id)]
