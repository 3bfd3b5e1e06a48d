"""Client data API: row CRUD with a project API key.

Paths are `/projects/{project_id}/{table}[/{row_id}]`, so this router must
be included after any router with more specific `/projects/{project_id}/...`
routes (client auth).
"""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Body, Depends, Query, Response, status

from tenantdb.dependencies import CallContext, get_platform, require_project_key
from tenantdb.models.responses import ErrorResponse
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(tags=["client"])


@router.get(
    "/projects/{project_id}/{table}",
    response_model=list[dict[str, Any]],
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="List rows",
)
async def list_rows(
    table: str,
    context: Annotated[CallContext, Depends(require_project_key)],
    platform: Annotated[Platform, Depends(get_platform)],
    limit: Annotated[int | None, Query(ge=0, description="Max rows to return")] = None,
    offset: Annotated[int, Query(ge=0, description="Rows to skip")] = 0,
) -> list[dict[str, Any]]:
    return platform.engine.list_rows(context.project_id, table, limit=limit, offset=offset)


@router.post(
    "/projects/{project_id}/{table}",
    response_model=dict[str, Any],
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Insert row",
)
async def insert_row(
    table: str,
    fields: Annotated[Any, Body(description="Row fields as a JSON object")],
    context: Annotated[CallContext, Depends(require_project_key)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> dict[str, Any]:
    logger.debug("client_insert_row", table=table, capability=context.capability)
    return platform.engine.insert_row(context.project_id, table, fields)


@router.put(
    "/projects/{project_id}/{table}/{row_id}",
    response_model=dict[str, Any],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Update row",
)
async def update_row(
    table: str,
    row_id: str,
    patch: Annotated[Any, Body(description="Fields to overwrite")],
    context: Annotated[CallContext, Depends(require_project_key)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> dict[str, Any]:
    logger.debug("client_update_row", table=table, row_id=row_id, capability=context.capability)
    return platform.engine.update_row(context.project_id, table, row_id, patch)


@router.delete(
    "/projects/{project_id}/{table}/{row_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Delete row",
)
async def delete_row(
    table: str,
    row_id: str,
    context: Annotated[CallContext, Depends(require_project_key)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> Response:
    logger.debug("client_delete_row", table=table, row_id=row_id, capability=context.capability)
    platform.engine.delete_row(context.project_id, table, row_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
