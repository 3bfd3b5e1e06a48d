"""Table management endpoints (admin)."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Response, status

from tenantdb.dependencies import get_platform, require_owned_project
from tenantdb.models.responses import (
    ErrorResponse,
    TableCreate,
    TableListResponse,
    TableResponse,
)
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(prefix="/admin", tags=["tables"])


@router.post(
    "/projects/{project_id}/tables",
    response_model=TableResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Create table",
    description="Create an empty table. Its only column is the `id` primary key.",
)
async def create_table(
    body: TableCreate,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> TableResponse:
    logger.info("create_table", project_id=project["id"], name=body.name)
    table = platform.engine.create_table(project["id"], body.name)
    return TableResponse.from_table(table)


@router.get(
    "/projects/{project_id}/tables",
    response_model=TableListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List tables",
)
async def list_tables(
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> TableListResponse:
    tables = platform.engine.list_tables(project["id"])
    return TableListResponse(
        tables=[TableResponse.from_table(t) for t in tables],
        total=len(tables),
    )


@router.get(
    "/projects/{project_id}/tables/{table}",
    response_model=TableResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get table",
    description="Get a table by ID or by name.",
)
async def get_table(
    table: str,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> TableResponse:
    return TableResponse.from_table(platform.engine.get_table(project["id"], table))


@router.delete(
    "/projects/{project_id}/tables/{table}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Drop table",
    description="Drop a table and all of its rows.",
)
async def drop_table(
    table: str,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> Response:
    logger.info("drop_table", project_id=project["id"], table=table)
    platform.engine.drop_table(project["id"], table)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
