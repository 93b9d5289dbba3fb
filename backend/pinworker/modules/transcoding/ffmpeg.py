"""FFmpeg transcoding utilities.

Produces a progressive-download friendly H.264/AAC MP4, either by
re-wrapping already compatible streams or by a full encode.
"""

import asyncio
import logging
import re
import time
from typing import Callable, Optional

from pinworker.modules.transcoding.errors import EncodeError
from pinworker.modules.transcoding.models import (
    Encoded,
    EncoderSettings,
    MediaProfile,
    ProgressEvent,
    Remuxed,
    TranscodeFailed,
    TranscodeOutcome,
    TranscodeStrategy,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

DIAGNOSTIC_TAIL_BYTES = 4000
READ_CHUNK_BYTES = 8192
# Longest unterminated line kept between chunks while scanning for progress
MAX_PENDING_LINE_BYTES = 512

PROGRESS_PATTERN = re.compile(rb"time=(\d{2}:\d{2}:\d{2}\.\d{2})")
_LINE_BREAK = re.compile(rb"[\r\n]")


def select_strategy(profile: MediaProfile) -> TranscodeStrategy:
    """Remux when the source is already H.264/AAC, otherwise encode.

    The output height cap does not participate: a compatible source is
    remuxed at its original size.
    """
    if profile.is_broadly_compatible:
        return TranscodeStrategy.REMUX
    return TranscodeStrategy.ENCODE


def get_scale_filter(profile: MediaProfile, encoder: EncoderSettings) -> Optional[str]:
    """Downscale filter for a full encode, or None to keep the source size.

    Never upscales. Width follows the aspect ratio and both dimensions
    stay even, as required by yuv420p.
    """
    if encoder.max_height is None or profile.height is None:
        return None
    if profile.height <= encoder.max_height:
        return None
    target_height = encoder.max_height - (encoder.max_height % 2)
    return f"scale=-2:{target_height}"


def get_output_height(profile: MediaProfile, encoder: EncoderSettings) -> Optional[int]:
    """Height the full encode will produce for this profile."""
    scale = get_scale_filter(profile, encoder)
    if scale is None:
        return profile.height
    return int(scale.rsplit(":", 1)[1])


class DiagnosticTail:
    """Keeps only the last ``limit`` bytes of a stream."""

    def __init__(self, limit: int = DIAGNOSTIC_TAIL_BYTES):
        self.limit = limit
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> None:
        self._buffer += chunk
        if len(self._buffer) > self.limit:
            del self._buffer[:-self.limit]

    def text(self) -> str:
        return self._buffer.decode("utf-8", errors="replace")


class ProgressScanner:
    """Finds ``time=HH:MM:SS.ff`` markers in chunked diagnostic output.

    Markers split across chunk boundaries are still found once the line
    they belong to is terminated.
    """

    def __init__(self):
        self._pending = b""

    def feed(self, chunk: bytes) -> list[str]:
        data = self._pending + chunk
        breaks = list(_LINE_BREAK.finditer(data))
        if breaks:
            cut = breaks[-1].end()
            complete, self._pending = data[:cut], data[cut:]
        else:
            complete, self._pending = b"", data

        if len(self._pending) > MAX_PENDING_LINE_BYTES:
            self._pending = self._pending[-MAX_PENDING_LINE_BYTES:]

        return [m.group(1).decode("ascii") for m in PROGRESS_PATTERN.finditer(complete)]

    def flush(self) -> list[str]:
        remaining, self._pending = self._pending, b""
        return [m.group(1).decode("ascii") for m in PROGRESS_PATTERN.finditer(remaining)]


class FFmpegTranscoder:
    """Drives ffmpeg to produce the final MP4."""

    def __init__(self, ffmpeg_path: str = "ffmpeg"):
        self.ffmpeg_path = ffmpeg_path

    def build_remux_command(self, input_path: str, output_path: str) -> list[str]:
        """Copy streams into a new MP4 with the moov atom moved to the front.

        Only the first video and first audio stream are mapped, the same
        streams the probe judged compatible.
        """
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostdin",
            "-y",
            "-i", input_path,
            "-map", "0:v:0",
            "-map", "0:a:0",
            "-c", "copy",
            "-movflags", "+faststart",
            "-f", "mp4",
            output_path,
        ]

    def build_encode_command(
        self,
        input_path: str,
        output_path: str,
        profile: MediaProfile,
        encoder: EncoderSettings,
    ) -> list[str]:
        """Full H.264/AAC encode with the configured preset and quality."""
        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostdin",
            "-y",
            "-i", input_path,
            # Audio is optional for a full encode
            "-map", "0:v:0",
            "-map", "0:a:0?",
            # Video settings
            "-c:v", "libx264",
            "-preset", encoder.preset,
            "-crf", str(encoder.crf),
            "-pix_fmt", "yuv420p",
        ]

        scale = get_scale_filter(profile, encoder)
        if scale:
            cmd.extend(["-vf", scale])

        cmd.extend([
            # Audio settings
            "-c:a", "aac",
            "-b:a", encoder.audio_bitrate,
        ])

        if encoder.threads > 0:
            cmd.extend(["-threads", str(encoder.threads)])

        cmd.extend([
            # Output format
            "-movflags", "+faststart",
            "-f", "mp4",
            output_path,
        ])
        return cmd

    def build_command(
        self,
        input_path: str,
        output_path: str,
        profile: MediaProfile,
        encoder: EncoderSettings,
    ) -> tuple[TranscodeStrategy, list[str]]:
        strategy = select_strategy(profile)
        if strategy is TranscodeStrategy.REMUX:
            return strategy, self.build_remux_command(input_path, output_path)
        return strategy, self.build_encode_command(input_path, output_path, profile, encoder)

    async def transcode(
        self,
        input_path: str,
        output_path: str,
        profile: MediaProfile,
        encoder: EncoderSettings,
        request_id: str = "",
        progress_callback: Optional[ProgressCallback] = None,
    ) -> TranscodeOutcome:
        """Run ffmpeg to completion.

        The diagnostic stream is drained continuously while the process
        runs, so a chatty ffmpeg can never fill the pipe and stall.

        Args:
            input_path: Source file
            output_path: Destination MP4
            profile: Probed source profile
            encoder: Encoding parameters for a full encode
            request_id: Request the progress events belong to
            progress_callback: Receives one ProgressEvent per marker

        Returns:
            Remuxed or Encoded on exit code 0, TranscodeFailed otherwise

        Raises:
            EncodeError: ffmpeg could not be started
        """
        strategy, cmd = self.build_command(input_path, output_path, profile, encoder)
        logger.info(
            "Starting ffmpeg",
            extra={"request_id": request_id, "strategy": strategy.value},
        )

        started_at = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncodeError(f"Failed to start ffmpeg: {e}") from e

        tail = DiagnosticTail()
        scanner = ProgressScanner()

        def notify(timestamps: list[str]) -> None:
            if progress_callback is None:
                return
            elapsed = round(time.monotonic() - started_at, 3)
            for timestamp in timestamps:
                try:
                    progress_callback(ProgressEvent(request_id, timestamp, elapsed))
                except Exception:
                    logger.warning("Progress callback failed", exc_info=True)

        try:
            while True:
                chunk = await process.stderr.read(READ_CHUNK_BYTES)
                if not chunk:
                    break
                tail.feed(chunk)
                notify(scanner.feed(chunk))
            notify(scanner.flush())

            exit_code = await process.wait()
        finally:
            # Cancelled or failed mid-read; ffmpeg must not outlive the request
            if process.returncode is None:
                process.kill()
                await process.wait()

        if exit_code != 0:
            logger.warning(
                "ffmpeg failed",
                extra={"request_id": request_id, "exit_code": exit_code},
            )
            return TranscodeFailed(
                strategy=strategy,
                exit_code=exit_code,
                diagnostic_tail=tail.text(),
            )

        if strategy is TranscodeStrategy.REMUX:
            return Remuxed()
        return Encoded()
