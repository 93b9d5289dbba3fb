"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

import tempfile
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Video Pin Worker"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    PORT: int = 8080
    LOG_JSON: bool = True

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Intake
    MAX_UPLOAD_MB: int = Field(default=512, gt=0)
    UPLOAD_DIR: str = Field(default_factory=tempfile.gettempdir)

    # FFmpeg
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    X264_PRESET: str = "veryfast"
    X264_CRF: int = Field(default=22, ge=0, le=51)
    AAC_BITRATE: str = "128k"
    MAX_OUTPUT_HEIGHT: Optional[int] = Field(default=None, gt=0)
    FFMPEG_THREADS: int = Field(default=0, ge=0)

    # Pinata - PINATA_JWT is REQUIRED for uploads, checked per request
    PINATA_JWT: str = ""
    PINATA_API_URL: str = "https://api.pinata.cloud/pinning/pinFileToIPFS"
    PINATA_GATEWAY: str = "https://gateway.pinata.cloud/ipfs"
    PINATA_CID_VERSION: int = Field(default=1, ge=0, le=1)
    PINATA_TIMEOUT_SECONDS: Optional[float] = None

    # Operation log ("" keeps it in memory only)
    OPLOG_PATH: str = "logs/transcode.log"
    OPLOG_MAX_ENTRIES: int = Field(default=100, gt=0)

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_MB * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
