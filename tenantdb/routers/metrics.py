"""Prometheus metrics endpoint router.

Exposes /metrics endpoint for Prometheus scraping.
Also refreshes the record-count gauges on every scrape.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tenantdb.config import settings
from tenantdb.dependencies import get_platform
from tenantdb.errors import TenantDBError
from tenantdb.metrics import (
    BUCKETS_TOTAL,
    PROJECTS_TOTAL,
    TABLES_TOTAL,
    set_service_info,
)
from tenantdb.platform import Platform

logger = structlog.get_logger()

router = APIRouter(tags=["metrics"])


def collect_platform_metrics(platform: Platform) -> None:
    """Collect current record counts from the document store."""
    try:
        PROJECTS_TOTAL.set(platform.tenants.count_projects())
        TABLES_TOTAL.set(platform.engine.count_tables())
        BUCKETS_TOTAL.set(platform.buckets.count_buckets())
    except TenantDBError as e:
        # A scrape still returns the process metrics when storage is down
        logger.error("metrics_collection_failed", error=str(e))


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics endpoint",
    description="Returns metrics in Prometheus text format for scraping.",
)
async def get_metrics(platform: Annotated[Platform, Depends(get_platform)]):
    """
    Expose Prometheus metrics.

    This endpoint is intentionally not authenticated to allow
    Prometheus scraping without credentials.
    """
    set_service_info(version=settings.api_version, storage_backend=platform.store.backend)
    collect_platform_metrics(platform)

    return PlainTextResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
