"""Pydantic schemas for the transcode endpoint."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TranscodeResponse(_CamelModel):
    """Successful transcode and pin."""
    content_id: str = Field(..., description="IPFS content identifier of the pinned MP4")
    gateway_url: str = Field(..., description="Public gateway link to the pinned MP4")
    request_id: str
    duration_ms: int = Field(..., ge=0)
    creator: str


class TranscodeErrorResponse(_CamelModel):
    """Failed transcode, at any stage."""
    error: str
    request_id: str
    duration_ms: int = Field(..., ge=0)


class UploadRejectedResponse(BaseModel):
    """Upload refused before the pipeline started."""
    error: str
