"""Prometheus metrics for the transcode worker.

HTTP request metrics are fed by MetricsMiddleware; pipeline metrics are
fed by the transcode orchestrator.
"""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

REGISTRY = CollectorRegistry()

# Running under gunicorn with several workers
if "PROMETHEUS_MULTIPROC_DIR" in os.environ or "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "pinworker_app",
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
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Transcode Pipeline Metrics
# ============================================
TRANSCODES_TOTAL = Counter(
    "transcodes_total",
    "Transcode requests by terminal status",
    ["status"],
    registry=REGISTRY,
)

TRANSCODE_STRATEGY_TOTAL = Counter(
    "transcode_strategy_total",
    "Transcode strategy selections",
    ["strategy"],
    registry=REGISTRY,
)

TRANSCODE_STAGE_DURATION_SECONDS = Histogram(
    "transcode_stage_duration_seconds",
    "Duration of each pipeline stage in seconds",
    ["stage"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
    registry=REGISTRY,
)

TRANSCODES_IN_PROGRESS = Gauge(
    "transcodes_in_progress",
    "Number of transcode pipelines currently running",
    registry=REGISTRY,
)

PINNED_BYTES_TOTAL = Counter(
    "pinned_bytes_total",
    "Bytes uploaded to the pinning service",
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus text format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
