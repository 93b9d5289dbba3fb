"""Transcode API router.

POST /transcode takes a multipart upload, runs it through the pipeline
and answers with the pinned content identifier.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import JSONResponse

from pinworker.core.config import Settings
from pinworker.core.logging import log_warning
from pinworker.modules.transcoding.dependencies import get_pipeline, get_settings
from pinworker.modules.transcoding.errors import PipelineFailedError, UploadTooLargeError
from pinworker.modules.transcoding.intake import (
    normalize_creator,
    normalize_optional,
    normalize_thumbnail,
    parse_int,
    spool_upload,
)
from pinworker.modules.transcoding.models import ClientContext, TranscodeRequest
from pinworker.modules.transcoding.schemas import (
    TranscodeErrorResponse,
    TranscodeResponse,
    UploadRejectedResponse,
)
from pinworker.modules.transcoding.service import TranscodePipeline
from pinworker.modules.transcoding.useragent import classify_user_agent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transcode"])


def client_context(request: Request) -> ClientContext:
    """Caller address, user agent and origin.

    The first X-Forwarded-For hop wins over the socket peer so the
    address survives a reverse proxy.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() or (request.client.host if request.client else None)
    return ClientContext(
        ip=ip or None,
        user_agent=request.headers.get("user-agent") or None,
        origin=request.headers.get("origin") or None,
    )


@router.post(
    "/transcode",
    response_model=TranscodeResponse,
    responses={
        400: {"model": TranscodeErrorResponse},
        413: {"model": UploadRejectedResponse},
        500: {"model": TranscodeErrorResponse},
        502: {"model": TranscodeErrorResponse},
    },
)
async def transcode_video(
    request: Request,
    video: Optional[UploadFile] = File(None),
    creator: Optional[str] = Form(None),
    thumbnail: Optional[str] = Form(None),
    thumbnail_url: Optional[str] = Form(None, alias="thumbnailUrl"),
    platform: Optional[str] = Form(None),
    device_info: Optional[str] = Form(None, alias="deviceInfo"),
    browser_info: Optional[str] = Form(None, alias="browserInfo"),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    correlation_id: Optional[str] = Form(None, alias="correlationId"),
    user_hp: Optional[str] = Form(None, alias="userHP"),
    connection_type: Optional[str] = Form(None, alias="connectionType"),
    pipeline: TranscodePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
):
    """Transcode an uploaded video to H.264/AAC MP4 and pin it.

    Broadly compatible sources are remuxed without re-encoding.
    """
    input_path = None
    declared_size = 0
    original_filename = ""

    if video is not None:
        original_filename = video.filename or ""
        try:
            input_path, declared_size = await spool_upload(
                video, settings.UPLOAD_DIR, settings.max_upload_bytes
            )
        except UploadTooLargeError as e:
            log_warning(logger, "Upload rejected", reason=str(e), upload_name=original_filename)
            return JSONResponse(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                content=UploadRejectedResponse(error=str(e)).model_dump(),
            )
        finally:
            await video.close()

    client = client_context(request)
    fingerprint = classify_user_agent(client.user_agent)

    transcode_request = TranscodeRequest(
        input_path=input_path,
        original_filename=original_filename,
        declared_size=declared_size,
        creator=normalize_creator(creator),
        thumbnail_url=normalize_thumbnail(thumbnail, thumbnail_url),
        client=client,
        platform=normalize_optional(platform) or fingerprint.os_family,
        device_info=normalize_optional(device_info) or fingerprint.label,
        browser_info=normalize_optional(browser_info) or fingerprint.browser_family,
        session_id=normalize_optional(session_id),
        correlation_id=normalize_optional(correlation_id),
        user_hp=parse_int(user_hp),
        connection_type=normalize_optional(connection_type),
    )

    try:
        return await pipeline.run(transcode_request)
    except PipelineFailedError as e:
        body = TranscodeErrorResponse(
            error=str(e),
            request_id=e.request_id,
            duration_ms=e.duration_ms,
        )
        return JSONResponse(
            status_code=e.status_code,
            content=body.model_dump(by_alias=True),
        )
