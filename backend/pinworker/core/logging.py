"""Structured logging with correlation IDs.

Every line carries the correlation ID of the HTTP request that produced
it, and the transcode request ID when one is known. That lets an upload
be followed from intake to pinning.
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from pinworker.core.tracing import current_trace_ids

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else arrived through ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "correlation_id",
}

# Extras lifted to the top level of the JSON line
_PROMOTED_FIELDS = ("request_id",)

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(correlation_id)s] %(message)s"


def get_correlation_id() -> str:
    """Correlation ID of the current context.

    Outside a request the active trace ID is used; failing that a new
    ID is minted and kept for the rest of the context.
    """
    correlation_id = correlation_id_var.get()
    if correlation_id:
        return correlation_id
    trace_id, _ = current_trace_ids()
    if trace_id:
        return trace_id
    correlation_id = uuid.uuid4().hex
    correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredFormatter(logging.Formatter):
    """Renders each record as one JSON object per line."""

    def __init__(self, include_stack_trace: bool = True):
        super().__init__()
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        fields = {
            key: _jsonable(value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        }

        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }
        for name in _PROMOTED_FIELDS:
            if name in fields:
                line[name] = fields.pop(name)

        trace_id, span_id = current_trace_ids()
        if trace_id:
            line["trace_id"] = trace_id
            line["span_id"] = span_id

        line["where"] = f"{record.module}:{record.funcName}:{record.lineno}"

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            error: dict[str, Any] = {"type": exc_type.__name__, "detail": str(exc_value)}
            if self.include_stack_trace:
                error["stack"] = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
            line["error"] = error

        if fields:
            line["fields"] = fields

        return json.dumps(line, default=str)


class CorrelationIdFilter(logging.Filter):
    """Stamps ``correlation_id`` on every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Route all logging to stdout through a single handler.

    Args:
        level: Root log level name
        json_format: JSON lines when true, plain text otherwise
        include_stack_trace: Put full stack traces in JSON error blocks
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter(include_stack_trace=include_stack_trace))
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _log(
    logger: logging.Logger,
    level: int,
    message: str,
    exception: Optional[BaseException],
    extra: dict[str, Any],
) -> None:
    extra["correlation_id"] = get_correlation_id()
    logger.log(level, message, exc_info=exception, extra=extra)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    """Log at ERROR, with the exception's traceback when one is given."""
    _log(logger, logging.ERROR, message, exception, extra)


def log_warning(logger: logging.Logger, message: str, **extra: Any) -> None:
    _log(logger, logging.WARNING, message, None, extra)


def log_info(logger: logging.Logger, message: str, **extra: Any) -> None:
    _log(logger, logging.INFO, message, None, extra)
