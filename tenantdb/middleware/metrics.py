"""Prometheus metrics middleware for HTTP request instrumentation.

Collects HTTP request metrics:
- Request count by method, endpoint, status code
- Request duration histogram
- In-flight requests gauge
"""

import time

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tenantdb.metrics import (
    REQUEST_COUNT,
    REQUEST_DURATION,
    REQUEST_IN_FLIGHT,
)

logger = structlog.get_logger()

# Collection segment -> placeholder for the identifier that follows it
ID_SEGMENTS = {
    "projects": "{project_id}",
    "tables": "{table}",
    "columns": "{column}",
    "rows": "{row_id}",
    "users": "{user_id}",
    "buckets": "{bucket_name}",
    "files": "{file_id}",
}


def normalize_path(path: str) -> str:
    """
    Normalize path for metrics labels to avoid high cardinality.

    Replaces dynamic path segments (UUIDs, names) with placeholders.

    Examples:
        /api/admin/projects/abc123 -> /api/admin/projects/{project_id}
        /api/admin/projects/abc/tables/items/rows/r1 ->
            /api/admin/projects/{project_id}/tables/{table}/rows/{row_id}
        /api/projects/abc/items/r1 -> /api/projects/{project_id}/{table}/{row_id}
    """
    parts = path.strip("/").split("/")
    normalized = []

    i = 0
    while i < len(parts):
        part = parts[i]

        if part in ID_SEGMENTS and i + 1 < len(parts):
            client_api = part == "projects" and (i == 0 or parts[i - 1] != "admin")
            normalized.append(part)
            normalized.append(ID_SEGMENTS[part])
            i += 2

            # Client row API: /projects/{project_id}/{table}[/{row_id}]
            rest = parts[i:]
            if client_api and rest and rest[0] != "auth":
                normalized.extend(["{table}", "{row_id}"][:len(rest)])
                break
            continue

        normalized.append(part)
        i += 1

    return "/" + "/".join(normalized) if normalized else "/"


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware that collects Prometheus metrics for HTTP requests.

    Metrics collected:
    - tenantdb_api_requests_total: Counter by method, endpoint, status_code
    - tenantdb_api_request_duration_seconds: Histogram by method, endpoint
    - tenantdb_api_requests_in_flight: Gauge by method
    """

    # Endpoints to skip (internal/debug endpoints)
    SKIP_PATHS = {"/metrics", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        method = request.method

        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        endpoint = normalize_path(request.url.path)

        REQUEST_IN_FLIGHT.labels(method=method).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        except Exception:
            status_code = "500"
            raise
        finally:
            duration = time.perf_counter() - start_time
            REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)
            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()
            REQUEST_IN_FLIGHT.labels(method=method).dec()

        return response
