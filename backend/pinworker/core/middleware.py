"""FastAPI middleware for metrics, correlation IDs, tracing and access logs."""

import logging
import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from pinworker.core.logging import clear_correlation_id, get_correlation_id, set_correlation_id
from pinworker.core.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
    HTTP_REQUESTS_TOTAL,
)
from pinworker.core.tracing import create_span, mark_span_failed, set_span_attributes

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)
_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")


def normalize_path(path: str) -> str:
    """Collapse UUID and numeric path segments so label sets stay bounded."""
    return _NUMERIC_SEGMENT.sub("/{id}", _UUID_PATTERN.sub("{id}", path))


class MetricsMiddleware(BaseHTTPMiddleware):
    """Request count, latency and in-flight gauge per method and route."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        labels = {"method": request.method, "endpoint": normalize_path(request.url.path)}
        in_progress = HTTP_REQUESTS_IN_PROGRESS.labels(**labels)
        in_progress.inc()
        started_at = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            HTTP_REQUEST_DURATION_SECONDS.labels(**labels).observe(time.perf_counter() - started_at)
            HTTP_REQUESTS_TOTAL.labels(status_code=str(status_code), **labels).inc()
            in_progress.dec()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Adopts the caller's X-Correlation-ID, or mints one, and echoes it back."""

    header = "X-Correlation-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(self.header) or uuid.uuid4().hex
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[self.header] = correlation_id
        return response


class TracingMiddleware(BaseHTTPMiddleware):
    """Wraps each request in a server span named after its route."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        attributes = {
            "http.request.method": request.method,
            "url.path": request.url.path,
            "user_agent.original": request.headers.get("user-agent", ""),
            "pinworker.correlation_id": get_correlation_id(),
        }
        declared_length = request.headers.get("content-length")
        if declared_length and declared_length.isdigit():
            attributes["http.request.body.size"] = int(declared_length)

        span_name = f"{request.method} {normalize_path(request.url.path)}"
        with create_span(span_name, attributes=attributes, kind=trace.SpanKind.SERVER):
            try:
                response = await call_next(request)
            except Exception as e:
                mark_span_failed(e)
                raise
            set_span_attributes({"http.response.status_code": response.status_code})
            return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One access line per request; probes and scrapes are not logged."""

    def __init__(self, app: ASGIApp, skip_paths: tuple[str, ...] = ("/healthz", "/metrics")):
        super().__init__(app)
        self.skip_paths = skip_paths
        self.logger = logging.getLogger("pinworker.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        started_at = time.perf_counter()
        fields = {
            "http_method": request.method,
            "http_path": request.url.path,
            "peer": request.client.host if request.client else None,
            "content_length": request.headers.get("content-length"),
        }
        try:
            response = await call_next(request)
        except Exception:
            fields["elapsed_ms"] = round((time.perf_counter() - started_at) * 1000, 1)
            self.logger.exception("Unhandled error while serving request", extra=fields)
            raise

        fields["status"] = response.status_code
        fields["elapsed_ms"] = round((time.perf_counter() - started_at) * 1000, 1)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        self.logger.log(level, "%s %s -> %d", request.method, request.url.path, response.status_code, extra=fields)
        return response


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects uploads whose declared Content-Length is over the cap.

    Runs before the multipart body is parsed, so an oversized request is
    refused without reading it. Bodies sent without a length are bounded
    later, while the file is spooled.
    """

    def __init__(self, app: ASGIApp, max_bytes: int, paths: tuple[str, ...] = ("/transcode",)):
        super().__init__(app)
        self.max_bytes = max_bytes
        self.paths = paths

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "POST" and request.url.path in self.paths:
            declared = request.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > self.max_bytes:
                limit_mb = self.max_bytes // (1024 * 1024)
                return JSONResponse(
                    status_code=413,
                    content={"error": f"Upload exceeds the {limit_mb} MB limit"},
                )
        return await call_next(request)


__all__ = [
    "MetricsMiddleware",
    "CorrelationIdMiddleware",
    "TracingMiddleware",
    "RequestLoggingMiddleware",
    "UploadSizeLimitMiddleware",
]
