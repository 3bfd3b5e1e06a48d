"""Row operations on a table (admin)."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Body, Depends, Query, Response, status

from tenantdb.dependencies import get_platform, require_owned_project
from tenantdb.models.responses import ErrorResponse
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(prefix="/admin", tags=["rows"])


@router.get(
    "/projects/{project_id}/tables/{table}/rows",
    response_model=list[dict[str, Any]],
    responses={404: {"model": ErrorResponse}},
    summary="List rows",
    description="Rows in insertion order, optionally paginated with limit/offset.",
)
async def list_rows(
    table: str,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
    limit: Annotated[int | None, Query(ge=0, description="Max rows to return")] = None,
    offset: Annotated[int, Query(ge=0, description="Rows to skip")] = 0,
) -> list[dict[str, Any]]:
    return platform.engine.list_rows(project["id"], table, limit=limit, offset=offset)


@router.post(
    "/projects/{project_id}/tables/{table}/rows",
    response_model=dict[str, Any],
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Insert row",
    description="Insert a row. The `id` is always generated by the server.",
)
async def insert_row(
    table: str,
    fields: Annotated[Any, Body(description="Row fields as a JSON object")],
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> dict[str, Any]:
    logger.debug("admin_insert_row", project_id=project["id"], table=table)
    return platform.engine.insert_row(project["id"], table, fields)


@router.put(
    "/projects/{project_id}/tables/{table}/rows/{row_id}",
    response_model=dict[str, Any],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Update row",
    description="Shallow-merge the given fields into the row. `id` cannot be changed.",
)
async def update_row(
    table: str,
    row_id: str,
    patch: Annotated[Any, Body(description="Fields to overwrite")],
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> dict[str, Any]:
    logger.debug("admin_update_row", project_id=project["id"], table=table, row_id=row_id)
    return platform.engine.update_row(project["id"], table, row_id, patch)


@router.delete(
    "/projects/{project_id}/tables/{table}/rows/{row_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete row",
)
async def delete_row(
    table: str,
    row_id: str,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> Response:
    logger.debug("admin_delete_row", project_id=project["id"], table=table, row_id=row_id)
    platform.engine.delete_row(project["id"], table, row_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
