"""Service health endpoint."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from tenantdb.config import settings
from tenantdb.dependencies import get_platform
from tenantdb.models.responses import ErrorResponse, HealthResponse
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(tags=["backend"])


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Health check",
    description="Check if the service is running and the document store answers queries.",
)
async def health_check(
    platform: Annotated[Platform, Depends(get_platform)],
) -> HealthResponse:
    """
    Perform health check.

    Validates:
    - Service is running
    - Document store is reachable
    """
    available = platform.store.is_available()

    logger.info(
        "health_check",
        status="healthy" if available else "unhealthy",
        storage_backend=platform.store.backend,
    )

    if not available:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Document store is not available",
        )

    return HealthResponse(
        status="healthy",
        version=settings.api_version,
        storage_backend=platform.store.backend,
        storage_available=True,
    )
