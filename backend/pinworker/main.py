"""FastAPI application entry point."""

import logging
from typing import Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from pinworker.core.config import Settings, settings
from pinworker.core.logging import log_warning, setup_logging
from pinworker.core.metrics import get_content_type, get_metrics, set_app_info
from pinworker.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
    TracingMiddleware,
    UploadSizeLimitMiddleware,
)
from pinworker.core.tracing import setup_tracing
from pinworker.modules.oplog import create_recorder, oplog_router
from pinworker.modules.oplog.recorder import OperationRecorder
from pinworker.modules.transcoding import TranscodePipeline, transcoding_router

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Optional[Settings] = None,
    recorder: Optional[OperationRecorder] = None,
    pipeline: Optional[TranscodePipeline] = None,
) -> FastAPI:
    """Build the application.

    Args:
        app_settings: Settings to use; the process-wide settings by default
        recorder: Operation recorder; built from settings when omitted
        pipeline: Transcode pipeline; built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    app_settings = app_settings or settings
    environment = "development" if app_settings.DEBUG else "production"

    setup_logging(
        level="DEBUG" if app_settings.DEBUG else "INFO",
        json_format=app_settings.LOG_JSON,
        include_stack_trace=True,
    )
    setup_tracing(
        service_name=app_settings.PROJECT_NAME,
        service_version=app_settings.VERSION,
        environment=environment,
        enable_console_export=app_settings.DEBUG,
    )
    set_app_info(version=app_settings.VERSION, environment=environment)

    if not app_settings.PINATA_JWT:
        log_warning(logger, "PINATA_JWT is not set; uploads will fail until it is configured")

    if recorder is None:
        recorder = create_recorder(app_settings.OPLOG_PATH, max_entries=app_settings.OPLOG_MAX_ENTRIES)
    if pipeline is None:
        pipeline = TranscodePipeline.from_settings(app_settings, recorder)

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        version=app_settings.VERSION,
        description="Transcodes uploaded videos to H.264/AAC MP4 and pins them to IPFS.",
        openapi_tags=[
            {"name": "health", "description": "Liveness and metrics"},
            {"name": "transcode", "description": "Upload, transcode and pin"},
            {"name": "oplog", "description": "Recent operations and aggregate stats"},
        ],
    )
    app.state.settings = app_settings
    app.state.recorder = recorder
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(UploadSizeLimitMiddleware, max_bytes=app_settings.max_upload_bytes)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(TracingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(MetricsMiddleware)

    @app.get("/healthz", tags=["health"])
    async def health_check() -> dict[str, bool]:
        """Liveness probe."""
        return {"ok": True}

    @app.get("/metrics", tags=["health"], response_class=PlainTextResponse)
    async def prometheus_metrics() -> Response:
        """Prometheus exposition of HTTP and pipeline metrics."""
        return Response(content=get_metrics(), media_type=get_content_type())

    app.include_router(transcoding_router)
    app.include_router(oplog_router)
    return app


app = create_app()
