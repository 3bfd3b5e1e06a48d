"""Project end-user management (admin)."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Response, status

from tenantdb.dependencies import get_platform, require_owned_project
from tenantdb.models.responses import (
    AuthUserCreate,
    AuthUserListResponse,
    AuthUserResponse,
    ErrorResponse,
)
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(prefix="/admin", tags=["auth-users"])


@router.get(
    "/projects/{project_id}/auth/users",
    response_model=AuthUserListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List users",
)
async def list_users(
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> AuthUserListResponse:
    users = platform.users.list_users(project["id"])
    return AuthUserListResponse(
        users=[AuthUserResponse(**u) for u in users],
        total=len(users),
    )


@router.post(
    "/projects/{project_id}/auth/users",
    response_model=AuthUserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Create user",
)
async def create_user(
    body: AuthUserCreate,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> AuthUserResponse:
    logger.info("create_auth_user", project_id=project["id"])
    user = platform.users.create_user(project["id"], body.email, body.password)
    return AuthUserResponse(**user)


@router.delete(
    "/projects/{project_id}/auth/users/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete user",
)
async def delete_user(
    user_id: str,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> Response:
    logger.info("delete_auth_user", project_id=project["id"], user_id=user_id)
    platform.users.delete_user(project["id"], user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
