"""Storage buckets and file metadata (admin)."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Response, status

from tenantdb.dependencies import get_platform, require_owned_project
from tenantdb.models.responses import (
    BucketCreate,
    BucketListResponse,
    BucketResponse,
    ErrorResponse,
    FileListResponse,
    FileRegisterRequest,
    FileResponse,
)
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(prefix="/admin/projects/{project_id}/storage", tags=["storage"])


# ============================================
# Buckets
# ============================================


@router.get(
    "/buckets",
    response_model=BucketListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List buckets",
)
async def list_buckets(
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> BucketListResponse:
    buckets = platform.buckets.list_buckets(project["id"])
    return BucketListResponse(
        buckets=[BucketResponse(**b) for b in buckets],
        total=len(buckets),
    )


@router.post(
    "/buckets",
    response_model=BucketResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Create bucket",
)
async def create_bucket(
    body: BucketCreate,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> BucketResponse:
    logger.info("create_bucket", project_id=project["id"], name=body.name)
    bucket = platform.buckets.create_bucket(project["id"], body.name, public=body.public)
    return BucketResponse(**bucket)


@router.delete(
    "/buckets/{bucket_name}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete bucket",
    description="Delete a bucket together with the metadata of all its files.",
)
async def delete_bucket(
    bucket_name: str,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> Response:
    files_deleted = platform.buckets.delete_bucket(project["id"], bucket_name)
    logger.info("delete_bucket", project_id=project["id"], name=bucket_name, files_deleted=files_deleted)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================
# Files
# ============================================


@router.get(
    "/buckets/{bucket_name}/files",
    response_model=FileListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List files",
)
async def list_files(
    bucket_name: str,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> FileListResponse:
    files = platform.buckets.list_files(project["id"], bucket_name)
    return FileListResponse(
        files=[FileResponse(**f) for f in files],
        total=len(files),
    )


@router.post(
    "/buckets/{bucket_name}/files",
    response_model=FileResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Register file",
    description="Record metadata for a file. The payload itself is not stored here.",
)
async def register_file(
    bucket_name: str,
    body: FileRegisterRequest,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> FileResponse:
    file = platform.buckets.register_file(
        project["id"],
        bucket_name,
        name=body.name,
        path=body.path,
        size=body.size,
        mime_type=body.mime_type,
    )
    return FileResponse(**file)


@router.delete(
    "/buckets/{bucket_name}/files/{file_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete file",
)
async def delete_file(
    bucket_name: str,
    file_id: str,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> Response:
    platform.buckets.delete_file(project["id"], bucket_name, file_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
