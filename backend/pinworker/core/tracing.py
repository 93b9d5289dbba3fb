"""OpenTelemetry tracing for the worker.

Each HTTP request gets a server span, and each pipeline stage (probe,
encode, upload) gets a child span. That way a slow transcode can be
broken down by stage.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from opentelemetry import trace
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

TRACER_NAME = "pinworker"

_provider: Optional[TracerProvider] = None


def setup_tracing(
    service_name: str,
    service_version: str,
    environment: str = "production",
    enable_console_export: bool = False,
) -> None:
    """Install the global tracer provider once per process.

    Args:
        service_name: Reported as ``service.name``
        service_version: Reported as ``service.version``
        environment: Reported as ``deployment.environment``
        enable_console_export: Print finished spans to stdout (debug runs)
    """
    global _provider

    if _provider is not None:
        return

    _provider = TracerProvider(resource=Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
        "deployment.environment": environment,
    }))
    if enable_console_export:
        _provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(_provider)
    set_global_textmap(TraceContextTextMapPropagator())
    logger.info(
        "Tracing enabled",
        extra={"service": service_name, "version": service_version, "console_export": enable_console_export},
    )


def shutdown_tracing() -> None:
    """Flush buffered spans on exit."""
    global _provider
    if _provider is not None:
        _provider.shutdown()
        _provider = None


def current_trace_ids() -> tuple[Optional[str], Optional[str]]:
    """Hex trace and span id of the active span, or (None, None)."""
    context = trace.get_current_span().get_span_context()
    if not context.is_valid:
        return None, None
    return format(context.trace_id, "032x"), format(context.span_id, "016x")


@contextmanager
def create_span(
    name: str,
    attributes: Optional[dict] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
) -> Iterator[Span]:
    """Run the enclosed block inside a new current span.

    Before ``setup_tracing`` this yields a non-recording span.
    """
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(name, kind=kind, attributes=attributes or {}) as span:
        yield span


def set_span_attributes(attributes: dict) -> None:
    span = trace.get_current_span()
    for key, value in attributes.items():
        span.set_attribute(key, value)


def mark_span_failed(exception: BaseException) -> None:
    """Attach an exception to the current span and set its status to error."""
    span = trace.get_current_span()
    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, str(exception)))
