"""Table schema operations: add, rename/retype and delete columns."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, status

from tenantdb.dependencies import get_platform, require_owned_project
from tenantdb.models.responses import (
    AddColumnRequest,
    AlterColumnRequest,
    ErrorResponse,
    TableResponse,
)
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(prefix="/admin", tags=["table-schema"])


# ============================================
# Column operations
# ============================================


@router.post(
    "/projects/{project_id}/tables/{table}/columns",
    response_model=TableResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Add column",
    description="Append a column. Existing rows are not backfilled.",
)
async def add_column(
    table: str,
    column: AddColumnRequest,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> TableResponse:
    logger.info("add_column", project_id=project["id"], table=table, column=column.name)
    updated = platform.engine.add_column(project["id"], table, column.name, column.type)
    return TableResponse.from_table(updated)


@router.put(
    "/projects/{project_id}/tables/{table}/columns/{column_name}",
    response_model=TableResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Rename or retype column",
    description="""
    Rename a column, change its type label, or both.

    A rename moves the stored value in every row in the same write as the
    schema change. The `id` primary key cannot be changed.
    """,
)
async def alter_column(
    table: str,
    column_name: str,
    changes: AlterColumnRequest,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> TableResponse:
    logger.info(
        "alter_column",
        project_id=project["id"],
        table=table,
        column=column_name,
        new_name=changes.new_name,
        new_type=changes.new_type,
    )
    updated = platform.engine.rename_or_retype_column(
        project["id"],
        table,
        column_name,
        new_name=changes.new_name,
        new_type=changes.new_type,
    )
    return TableResponse.from_table(updated)


@router.delete(
    "/projects/{project_id}/tables/{table}/columns/{column_name}",
    response_model=TableResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Delete column",
    description="Remove a column and its value from every row. The `id` column cannot be deleted.",
)
async def delete_column(
    table: str,
    column_name: str,
    project: Annotated[dict[str, Any], Depends(require_owned_project)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> TableResponse:
    logger.info("delete_column", project_id=project["id"], table=table, column=column_name)
    updated = platform.engine.delete_column(project["id"], table, column_name)
    return TableResponse.from_table(updated)
