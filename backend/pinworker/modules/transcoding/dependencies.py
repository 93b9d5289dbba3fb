"""FastAPI dependencies for the transcode endpoint."""

from fastapi import Request

from pinworker.core.config import Settings
from pinworker.modules.transcoding.service import TranscodePipeline


def get_pipeline(request: Request) -> TranscodePipeline:
    return request.app.state.pipeline


def get_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings
