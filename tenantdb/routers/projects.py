"""Project management endpoints (admin)."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, status

from tenantdb.auth import AdminAccount
from tenantdb.dependencies import get_platform, require_admin
from tenantdb.models.responses import (
    ErrorResponse,
    ProjectCreate,
    ProjectDeleteResponse,
    ProjectListResponse,
    ProjectResponse,
)
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(prefix="/admin", tags=["projects"])


def _to_response(project: dict[str, Any]) -> ProjectResponse:
    return ProjectResponse(
        id=project["id"],
        name=project["name"],
        owner_id=project["owner_id"],
        url=project["url"],
        anon_key=project["anon_key"],
        service_key=project["service_key"],
        created_at=project["created_at"],
    )


@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
    },
    summary="Create project",
    description="Create a project owned by the calling administrator and issue its API keys.",
)
async def create_project(
    body: ProjectCreate,
    account: Annotated[AdminAccount, Depends(require_admin)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> ProjectResponse:
    logger.info("create_project", account_id=account.id)
    project = platform.tenants.create_project(account.id, body.name)
    return _to_response(project)


@router.get(
    "/projects",
    response_model=ProjectListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List projects",
    description="List the calling administrator's projects in creation order.",
)
async def list_projects(
    account: Annotated[AdminAccount, Depends(require_admin)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> ProjectListResponse:
    logger.info("list_projects", account_id=account.id)
    projects = platform.tenants.list_projects(account.id)
    return ProjectListResponse(
        projects=[_to_response(p) for p in projects],
        total=len(projects),
    )


@router.delete(
    "/projects/{project_id}",
    response_model=ProjectDeleteResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Delete project",
    description="""
    Delete a project with all of its tables, rows, auth users, buckets and files.

    From the moment deletion starts the project is reported as not found.
    Retrying a delete that failed midway resumes it.
    """,
)
async def delete_project(
    project_id: str,
    account: Annotated[AdminAccount, Depends(require_admin)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> ProjectDeleteResponse:
    logger.info("delete_project", project_id=project_id)
    counts = platform.tenants.delete_project(account.id, project_id)
    return ProjectDeleteResponse(project_id=project_id, deleted=counts)
