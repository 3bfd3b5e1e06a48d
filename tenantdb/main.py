"""TenantDB API - FastAPI application."""

import logging
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenantdb.config import settings
from tenantdb.errors import TenantDBError
from tenantdb.metrics import ERROR_COUNT, set_service_info
from tenantdb.middleware.metrics import MetricsMiddleware, normalize_path
from tenantdb.platform import build_platform
from tenantdb.routers import (
    admin_auth,
    auth_users,
    backend,
    client,
    client_auth,
    metrics,
    projects,
    realtime,
    rows,
    storage,
    table_schema,
    tables,
)

HTTP_ERROR_CODES = {
    404: "not_found",
    405: "method_not_allowed",
    503: "unavailable",
}


def setup_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if not settings.debug else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.INFO if not settings.debug else logging.DEBUG
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger = structlog.get_logger()
    logger.info(
        "application_startup",
        version=settings.api_version,
        debug=settings.debug,
        storage_backend=settings.storage_backend,
        data_dir=str(settings.data_dir),
    )

    if not settings.admin_accounts:
        logger.warning("admin_accounts_not_configured")

    try:
        app.state.platform = build_platform(settings)
        logger.info("document_store_initialized", path=str(settings.metadata_db_path))
    except Exception as e:
        logger.error("document_store_init_failed", error=str(e), exc_info=True)
        raise

    set_service_info(version=settings.api_version, storage_backend=settings.storage_backend)

    yield

    logger.info("application_shutdown")


# Setup logging before creating app
setup_logging()
logger = structlog.get_logger()

# Create FastAPI application
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="""
TenantDB: a self-hosted, multi-tenant data API.

- Administrators log in, create projects and manage their tables,
  columns, rows, end users and storage buckets.
- Client applications use a project's anon or service key to read and
  write rows, sign users up and subscribe to row changes over WebSocket.

Errors are returned as `{"error": <message>, "code": <kind>}`.
    """,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add metrics middleware (for Prometheus request instrumentation)
app.add_middleware(MetricsMiddleware)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log all requests with timing and request ID."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    start_time = time.perf_counter()

    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
    )

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )

    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(TenantDBError)
async def tenantdb_exception_handler(request: Request, exc: TenantDBError):
    """Render expected failures as {"error", "code"}."""
    ERROR_COUNT.labels(type=exc.code, endpoint=normalize_path(request.url.path)).inc()

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        method=request.method,
        path=request.url.path,
        status_code=exc.status_code,
        code=exc.code,
        error=exc.message,
        **exc.details,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters are validation failures (400)."""
    ERROR_COUNT.labels(type="validation", endpoint=normalize_path(request.url.path)).inc()

    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"

    logger.info("request_invalid", method=request.method, path=request.url.path, error=message)
    return JSONResponse(status_code=400, content={"error": message, "code": "validation"})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Routing errors (unknown path, wrong method) in the common error shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": str(exc.detail),
            "code": HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    endpoint = normalize_path(request.url.path)
    error_type = type(exc).__name__

    ERROR_COUNT.labels(type=error_type, endpoint=endpoint).inc()

    logger.error(
        "unhandled_exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=error_type,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc) if settings.debug else "Internal server error",
            "code": "internal",
        },
    )


# Include routers. client_auth must precede client: the client row routes
# match any /projects/{project_id}/{table} path.
app.include_router(backend.router, prefix=settings.api_prefix)
app.include_router(admin_auth.router, prefix=settings.api_prefix)
app.include_router(projects.router, prefix=settings.api_prefix)
app.include_router(tables.router, prefix=settings.api_prefix)
app.include_router(table_schema.router, prefix=settings.api_prefix)
app.include_router(rows.router, prefix=settings.api_prefix)
app.include_router(auth_users.router, prefix=settings.api_prefix)
app.include_router(storage.router, prefix=settings.api_prefix)
app.include_router(client_auth.router, prefix=settings.api_prefix)
app.include_router(client.router, prefix=settings.api_prefix)
app.include_router(realtime.router, prefix=settings.api_prefix)
app.include_router(metrics.router)


# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint - points at the health check."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "health": f"{settings.api_prefix}/health",
        "docs": "/docs" if settings.debug else None,
    }


def main() -> None:
    import uvicorn

    uvicorn.run(
        "tenantdb.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
