"""Prometheus metrics definitions for the TenantDB API.

This module defines all Prometheus metrics used for observability:
- HTTP request metrics (count, duration, in-flight)
- Document store metrics (queries, duration)
- Table lock metrics
- Tenant inventory gauges (collected on scrape)
- Realtime change bus metrics
"""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# =============================================================================
# Service Health Metrics
# =============================================================================

SERVICE_UP = Gauge(
    "tenantdb_api_up",
    "Whether the TenantDB API service is up (1) or down (0)"
)

SERVICE_START_TIME = Gauge(
    "tenantdb_api_start_time_seconds",
    "Unix timestamp when the service started"
)

SERVICE_START_TIME.set(time.time())
SERVICE_UP.set(1)

# =============================================================================
# HTTP Request Metrics
# =============================================================================

REQUEST_COUNT = Counter(
    "tenantdb_api_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"]
)

REQUEST_DURATION = Histogram(
    "tenantdb_api_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

REQUEST_IN_FLIGHT = Gauge(
    "tenantdb_api_requests_in_flight",
    "Number of HTTP requests currently being processed",
    ["method"]
)

# =============================================================================
# Error Metrics
# =============================================================================

ERROR_COUNT = Counter(
    "tenantdb_api_errors_total",
    "Total number of errors by type",
    ["type", "endpoint"]
)

# =============================================================================
# Inventory Metrics (collected on-demand)
# =============================================================================

PROJECTS_TOTAL = Gauge(
    "tenantdb_projects_total",
    "Total number of projects"
)

TABLES_TOTAL = Gauge(
    "tenantdb_tables_total",
    "Total number of tables across all projects"
)

BUCKETS_TOTAL = Gauge(
    "tenantdb_buckets_total",
    "Total number of storage buckets across all projects"
)

# =============================================================================
# Table Lock Metrics
# =============================================================================

TABLE_LOCK_ACQUISITIONS = Counter(
    "tenantdb_table_lock_acquisitions_total",
    "Total number of table lock acquisitions",
    ["project_id", "table"]
)

TABLE_LOCK_WAIT_TIME = Histogram(
    "tenantdb_table_lock_wait_seconds",
    "Time spent waiting for table lock",
    buckets=[0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

TABLE_LOCKS_ACTIVE = Gauge(
    "tenantdb_table_locks_active",
    "Number of currently held table locks"
)

# =============================================================================
# Document Store Metrics
# =============================================================================

STORE_QUERIES_TOTAL = Counter(
    "tenantdb_store_queries_total",
    "Total document store queries",
    ["operation"]  # read, write
)

STORE_QUERY_DURATION = Histogram(
    "tenantdb_store_query_duration_seconds",
    "Document store query duration in seconds",
    ["operation"],  # read, write
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5]
)

STORE_CONNECTIONS_ACTIVE = Gauge(
    "tenantdb_store_connections_active",
    "Active connections to the document store"
)

# =============================================================================
# Realtime Metrics
# =============================================================================

REALTIME_CONNECTIONS = Gauge(
    "tenantdb_realtime_connections",
    "Number of connected realtime subscribers"
)

CHANGE_EVENTS_PUBLISHED = Counter(
    "tenantdb_change_events_published_total",
    "Row change events published to the change bus",
    ["event"]
)

CHANGE_EVENTS_DROPPED = Counter(
    "tenantdb_change_events_dropped_total",
    "Row change events dropped because a subscriber queue was full"
)

# =============================================================================
# Service Info
# =============================================================================

SERVICE_INFO = Info(
    "tenantdb_api_service",
    "TenantDB API Service information"
)


def set_service_info(version: str, storage_backend: str) -> None:
    """Set service info labels."""
    SERVICE_INFO.info({
        "version": version,
        "storage_backend": storage_backend,
    })
