"""Service layer for the transcode pipeline.

Owns the lifecycle of one request:
Received -> Validated -> Probed -> Transcoded -> Uploaded -> Completed,
with an escape to Failed from any non-terminal state. Temporary files
are removed on every exit path.
"""

import asyncio
import logging
import os
import time
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional

from pinworker.core.config import Settings
from pinworker.core.logging import log_error, log_info, log_warning
from pinworker.core.metrics import (
    PINNED_BYTES_TOTAL,
    TRANSCODE_STAGE_DURATION_SECONDS,
    TRANSCODE_STRATEGY_TOTAL,
    TRANSCODES_IN_PROGRESS,
    TRANSCODES_TOTAL,
)
from pinworker.core.tracing import create_span
from pinworker.modules.oplog.recorder import OperationRecorder
from pinworker.modules.transcoding.errors import (
    EncodeError,
    PipelineFailedError,
    TranscodeError,
    ValidationError,
)
from pinworker.modules.transcoding.ffmpeg import FFmpegTranscoder
from pinworker.modules.transcoding.intake import discard
from pinworker.modules.transcoding.models import (
    EncoderSettings,
    ProgressEvent,
    TranscodeFailed,
    TranscodeRequest,
)
from pinworker.modules.transcoding.pinning import PinataClient, build_pin_metadata
from pinworker.modules.transcoding.probe import MediaProber
from pinworker.modules.transcoding.schemas import TranscodeResponse

logger = logging.getLogger(__name__)

NO_FILE_MESSAGE = 'No file uploaded. Send multipart/form-data with field "video".'
CANCELLED_MESSAGE = "Request cancelled before completion"


class PipelineState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    PROBED = "probed"
    TRANSCODED = "transcoded"
    UPLOADED = "uploaded"
    COMPLETED = "completed"
    FAILED = "failed"


def _elapsed_ms(started_at: float) -> int:
    return int(round((time.monotonic() - started_at) * 1000))


def _started_context(request: TranscodeRequest) -> dict:
    return {
        "user": request.creator,
        "filename": request.original_filename or None,
        "file_size": request.declared_size,
        "client_ip": request.client.ip,
        "user_agent": request.client.user_agent,
        "origin": request.client.origin,
        "platform": request.platform,
        "device_info": request.device_info,
        "browser_info": request.browser_info,
        "session_id": request.session_id,
        "correlation_id": request.correlation_id,
        "user_hp": request.user_hp,
        "connection_type": request.connection_type,
        "start_time": int(time.time() * 1000),
    }


class TranscodePipeline:
    """Runs probe, transcode and pin for one upload at a time per call.

    Instances hold no per-request state, so one pipeline serves any
    number of concurrent requests.
    """

    def __init__(
        self,
        prober: MediaProber,
        transcoder: FFmpegTranscoder,
        uploader: PinataClient,
        recorder: OperationRecorder,
        encoder: EncoderSettings,
        work_dir: str,
    ):
        self.prober = prober
        self.transcoder = transcoder
        self.uploader = uploader
        self.recorder = recorder
        self.encoder = encoder
        self.work_dir = work_dir

    @classmethod
    def from_settings(cls, settings: Settings, recorder: OperationRecorder) -> "TranscodePipeline":
        return cls(
            prober=MediaProber(settings.FFPROBE_PATH),
            transcoder=FFmpegTranscoder(settings.FFMPEG_PATH),
            uploader=PinataClient.from_settings(settings),
            recorder=recorder,
            encoder=EncoderSettings.from_settings(settings),
            work_dir=settings.UPLOAD_DIR,
        )

    def output_path_for(self, request_id: str) -> str:
        return os.path.join(self.work_dir, f"{request_id}.mp4")

    @contextmanager
    def _stage(self, name: str, request_id: str) -> Iterator[None]:
        started_at = time.monotonic()
        try:
            with create_span(f"transcode.{name}", attributes={"request_id": request_id}):
                yield
        finally:
            TRANSCODE_STAGE_DURATION_SECONDS.labels(stage=name).observe(time.monotonic() - started_at)

    def _on_progress(self, event: ProgressEvent) -> None:
        self.recorder.progress(event.request_id, event.timestamp, event.elapsed_seconds)

    def _record_failure(self, request: TranscodeRequest, error: str, duration_ms: int) -> None:
        self.recorder.record_failed(
            request.request_id,
            error=error,
            duration=duration_ms,
            user=request.creator,
            filename=request.original_filename or None,
            client_ip=request.client.ip,
        )
        TRANSCODES_TOTAL.labels(status=PipelineState.FAILED.value).inc()

    async def run(self, request: TranscodeRequest) -> TranscodeResponse:
        """Execute the full pipeline for one request.

        Args:
            request: The upload; its input file is removed on return

        Returns:
            TranscodeResponse with the pinned content identifier

        Raises:
            PipelineFailedError: any stage failed; carries the cause,
                request ID and elapsed time
        """
        started_at = time.monotonic()
        request_id = request.request_id
        output_path: Optional[str] = None
        state = PipelineState.RECEIVED

        TRANSCODES_IN_PROGRESS.inc()
        try:
            if not request.input_path:
                raise ValidationError(NO_FILE_MESSAGE)
            state = PipelineState.VALIDATED
            self.recorder.record_started(request_id, **_started_context(request))

            with self._stage("probe", request_id):
                profile = await self.prober.probe(request.input_path)
            state = PipelineState.PROBED

            output_path = self.output_path_for(request_id)
            with self._stage("encode", request_id):
                outcome = await self.transcoder.transcode(
                    request.input_path,
                    output_path,
                    profile,
                    self.encoder,
                    request_id=request_id,
                    progress_callback=self._on_progress,
                )
            TRANSCODE_STRATEGY_TOTAL.labels(strategy=outcome.strategy.value).inc()
            if isinstance(outcome, TranscodeFailed):
                raise EncodeError.from_exit(outcome.exit_code, outcome.diagnostic_tail)
            state = PipelineState.TRANSCODED

            output_size = os.path.getsize(output_path)
            with self._stage("upload", request_id):
                artifact = await self.uploader.pin_file(output_path, build_pin_metadata(request))
            PINNED_BYTES_TOTAL.inc(output_size)
            state = PipelineState.UPLOADED

            duration_ms = _elapsed_ms(started_at)
            self.recorder.record_completed(
                request_id,
                cid=artifact.content_id,
                gateway_url=artifact.gateway_url,
                duration=duration_ms,
            )
            state = PipelineState.COMPLETED
            TRANSCODES_TOTAL.labels(status=state.value).inc()
            log_info(
                logger,
                "Transcode completed",
                request_id=request_id,
                strategy=outcome.strategy.value,
                cid=artifact.content_id,
                duration_ms=duration_ms,
            )
            return TranscodeResponse(
                content_id=artifact.content_id,
                gateway_url=artifact.gateway_url,
                request_id=request_id,
                duration_ms=duration_ms,
                creator=request.creator,
            )

        except asyncio.CancelledError:
            duration_ms = _elapsed_ms(started_at)
            self._record_failure(request, CANCELLED_MESSAGE, duration_ms)
            log_warning(
                logger,
                "Transcode cancelled",
                request_id=request_id,
                failed_after=state.value,
                duration_ms=duration_ms,
            )
            raise

        except Exception as e:
            cause = e if isinstance(e, TranscodeError) else TranscodeError(str(e) or e.__class__.__name__)
            duration_ms = _elapsed_ms(started_at)
            self._record_failure(request, str(cause), duration_ms)
            log_error(
                logger,
                "Transcode failed",
                exception=None if isinstance(e, TranscodeError) else e,
                request_id=request_id,
                failed_after=state.value,
                error_type=cause.__class__.__name__,
                duration_ms=duration_ms,
            )
            raise PipelineFailedError(cause, request_id, duration_ms) from e

        finally:
            TRANSCODES_IN_PROGRESS.dec()
            discard(request.input_path)
            discard(output_path or self.output_path_for(request_id))
