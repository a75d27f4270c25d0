"""Prometheus metrics for the usage service."""

import os

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    multiprocess,
)

REGISTRY = CollectorRegistry()

# Gunicorn-style multiprocess deployments
if "PROMETHEUS_MULTIPROC_DIR" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "homecare_usage_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Usage Tracking Metrics
# ============================================
USAGE_EVENTS_TOTAL = Counter(
    "usage_events_total",
    "Tracked usage events by resource category and tier",
    ["category", "tier"],
    registry=REGISTRY,
)

USAGE_WARNINGS_TOTAL = Counter(
    "usage_warnings_total",
    "Usage warnings computed after a tracking call",
    ["kind", "severity"],
    registry=REGISTRY,
)

USAGE_NOTIFICATION_FAILURES_TOTAL = Counter(
    "usage_notification_failures_total",
    "Usage update notifications that could not be published",
    registry=REGISTRY,
)

USAGE_STATS_CACHE_TOTAL = Counter(
    "usage_stats_cache_total",
    "Admin usage statistics cache lookups",
    ["result"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
