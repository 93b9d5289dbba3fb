"""Transcode pipeline: probe, remux or encode, pin."""

from pinworker.modules.transcoding.router import router as transcoding_router
from pinworker.modules.transcoding.service import TranscodePipeline

__all__ = [
    "TranscodePipeline",
    "transcoding_router",
]
