"""FFprobe media inspection.

Reads stream headers only; nothing is decoded.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from pinworker.modules.transcoding.errors import ProbeError
from pinworker.modules.transcoding.models import MediaProfile

logger = logging.getLogger(__name__)

PROBE_ENTRIES = "stream=index,codec_type,codec_name,width,height"
VIDEO_SELECTOR = "v:0"
AUDIO_SELECTOR = "a:0"
DIAGNOSTIC_TAIL_BYTES = 4000


class MediaProber:
    """Inspects codecs and dimensions of a local media file with ffprobe."""

    def __init__(self, ffprobe_path: str = "ffprobe"):
        self.ffprobe_path = ffprobe_path

    def build_probe_command(self, input_path: str, selector: str) -> list[str]:
        return [
            self.ffprobe_path,
            "-v", "error",
            "-select_streams", selector,
            "-show_entries", PROBE_ENTRIES,
            "-of", "json",
            input_path,
        ]

    async def probe(self, input_path: str) -> MediaProfile:
        """Probe the first video and first audio stream of a file.

        ffprobe runs once per stream kind, each run restricted to a
        single stream.

        Args:
            input_path: Path to a readable local file

        Returns:
            MediaProfile of the file

        Raises:
            ProbeError: ffprobe could not be run, exited non-zero, or
                printed something that is not the expected JSON
        """
        video_raw = await self._run(self.build_probe_command(input_path, VIDEO_SELECTOR))
        audio_raw = await self._run(self.build_probe_command(input_path, AUDIO_SELECTOR))

        profile = parse_probe_output(video_raw, audio_raw)
        logger.debug(
            "Probed media",
            extra={
                "input_path": input_path,
                "video_codec": profile.video_codec,
                "audio_codec": profile.audio_codec,
                "height": profile.height,
            },
        )
        return profile

    async def _run(self, cmd: list[str]) -> bytes:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProbeError(f"Failed to start ffprobe: {e}") from e

        stdout, stderr = await process.communicate()
        diagnostic_tail = stderr[-DIAGNOSTIC_TAIL_BYTES:].decode("utf-8", errors="replace")

        if process.returncode != 0:
            raise ProbeError(
                f"ffprobe exited with {process.returncode}: {diagnostic_tail}",
                exit_code=process.returncode,
                diagnostic_tail=diagnostic_tail,
            )
        return stdout


def parse_probe_output(*listings: bytes) -> MediaProfile:
    """Build a MediaProfile from one or more ffprobe JSON stream listings.

    Only the first stream of each type, across all listings in order,
    is considered.

    Raises:
        ProbeError: if a listing is not a JSON object with a stream list
    """
    streams = [stream for raw in listings for stream in _stream_list(raw)]
    video = _first_stream(streams, "video")
    audio = _first_stream(streams, "audio")

    return MediaProfile(
        video_codec=video.get("codec_name") if video else None,
        audio_codec=audio.get("codec_name") if audio else None,
        width=_as_int(video.get("width")) if video else None,
        height=_as_int(video.get("height")) if video else None,
    )


def _stream_list(raw: bytes) -> list:
    try:
        info = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProbeError(f"Unparsable ffprobe output: {e}") from e

    if not isinstance(info, dict):
        raise ProbeError("Unparsable ffprobe output: expected a JSON object")

    streams = info.get("streams", [])
    if not isinstance(streams, list):
        raise ProbeError("Unparsable ffprobe output: 'streams' is not a list")
    return streams


def _first_stream(streams: list, codec_type: str) -> Optional[dict[str, Any]]:
    for stream in streams:
        if isinstance(stream, dict) and stream.get("codec_type") == codec_type:
            return stream
    return None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
