"""Domain types for the transcode pipeline."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pinworker.core.config import Settings


class TranscodeStrategy(str, Enum):
    """How the executor produces the output file."""
    REMUX = "remux"
    ENCODE = "encode"


# Codec pair that plays everywhere without re-encoding
COMPATIBLE_VIDEO_CODEC = "h264"
COMPATIBLE_AUDIO_CODEC = "aac"


def new_request_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class MediaProfile:
    """Codec and dimension summary of the first video and audio streams.

    A ``None`` field means the stream was not found.
    """
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def is_broadly_compatible(self) -> bool:
        return (
            self.video_codec == COMPATIBLE_VIDEO_CODEC
            and self.audio_codec == COMPATIBLE_AUDIO_CODEC
        )


@dataclass(frozen=True)
class EncoderSettings:
    """Encoding parameters for a full encode."""
    preset: str = "veryfast"
    crf: int = 22
    audio_bitrate: str = "128k"
    max_height: Optional[int] = None
    threads: int = 0

    def __post_init__(self):
        if not 0 <= self.crf <= 51:
            raise ValueError(f"crf must be within 0..51, got {self.crf}")
        if self.max_height is not None and self.max_height < 2:
            raise ValueError(f"max_height must be at least 2, got {self.max_height}")
        if self.threads < 0:
            raise ValueError(f"threads must not be negative, got {self.threads}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EncoderSettings":
        return cls(
            preset=settings.X264_PRESET,
            crf=settings.X264_CRF,
            audio_bitrate=settings.AAC_BITRATE,
            max_height=settings.MAX_OUTPUT_HEIGHT,
            threads=settings.FFMPEG_THREADS,
        )


@dataclass(frozen=True)
class TranscodeOutcome:
    """Result of one executor run."""
    strategy: TranscodeStrategy

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True)
class Remuxed(TranscodeOutcome):
    strategy: TranscodeStrategy = TranscodeStrategy.REMUX


@dataclass(frozen=True)
class Encoded(TranscodeOutcome):
    strategy: TranscodeStrategy = TranscodeStrategy.ENCODE


@dataclass(frozen=True)
class TranscodeFailed(TranscodeOutcome):
    exit_code: int = 1
    diagnostic_tail: str = ""

    @property
    def succeeded(self) -> bool:
        return False


@dataclass(frozen=True)
class ProgressEvent:
    """Live progress marker parsed from ffmpeg's diagnostic stream."""
    request_id: str
    timestamp: str
    elapsed_seconds: float


@dataclass(frozen=True)
class ClientContext:
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    origin: Optional[str] = None


@dataclass
class TranscodeRequest:
    """One upload travelling through the pipeline.

    ``input_path`` is owned by the orchestrator for the lifetime of the
    request and removed when the pipeline exits. ``None`` means the
    client sent no file.
    """
    input_path: Optional[str]
    original_filename: str = ""
    declared_size: int = 0
    creator: str = "anonymous"
    thumbnail_url: Optional[str] = None
    client: ClientContext = field(default_factory=ClientContext)
    platform: Optional[str] = None
    device_info: Optional[str] = None
    browser_info: Optional[str] = None
    session_id: Optional[str] = None
    correlation_id: Optional[str] = None
    user_hp: int = 0
    connection_type: Optional[str] = None
    request_id: str = field(default_factory=new_request_id)


@dataclass(frozen=True)
class PinnedArtifact:
    """Content identifier returned by the pinning service."""
    content_id: str
    gateway_url: str
    metadata: dict = field(default_factory=dict)
