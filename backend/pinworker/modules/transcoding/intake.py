"""Upload intake: spooling the multipart file to disk and cleaning form fields."""

import asyncio
import logging
import os
import re
import time
import uuid
from typing import Optional

from fastapi import UploadFile

from pinworker.modules.transcoding.errors import UploadTooLargeError

logger = logging.getLogger(__name__)

MAX_CREATOR_CHARS = 64
MAX_THUMBNAIL_CHARS = 2048
MAX_FIELD_CHARS = 256
SPOOL_CHUNK_BYTES = 1024 * 1024
DEFAULT_CREATOR = "anonymous"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def normalize_creator(raw: Optional[str]) -> str:
    creator = (raw or "").strip()[:MAX_CREATOR_CHARS]
    return creator or DEFAULT_CREATOR


def normalize_thumbnail(*candidates: Optional[str]) -> Optional[str]:
    """First non-blank candidate, truncated; None when all are blank."""
    for raw in candidates:
        value = (raw or "").strip()
        if value:
            return value[:MAX_THUMBNAIL_CHARS]
    return None


def normalize_optional(raw: Optional[str], limit: int = MAX_FIELD_CHARS) -> Optional[str]:
    value = (raw or "").strip()
    return value[:limit] if value else None


def parse_int(raw: Optional[str], default: int = 0) -> int:
    try:
        return int((raw or "").strip())
    except ValueError:
        return default


def safe_filename(original: Optional[str]) -> str:
    """Reduce a client supplied filename to a safe basename."""
    name = os.path.basename((original or "").replace("\\", "/"))
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._")
    return name[:128] or "upload"


def spool_path(directory: str, original_filename: Optional[str]) -> str:
    stamp = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
    return os.path.join(directory, f"{stamp}-{safe_filename(original_filename)}")


async def spool_upload(upload: UploadFile, directory: str, max_bytes: int) -> tuple[str, int]:
    """Copy an uploaded file to ``directory`` in chunks.

    Args:
        upload: The multipart file part
        directory: Destination directory, created if missing
        max_bytes: Size cap; exceeding it aborts the copy

    Returns:
        Tuple of (path, bytes written)

    Raises:
        UploadTooLargeError: the upload is larger than ``max_bytes``;
            the partial file has already been removed
    """
    os.makedirs(directory, exist_ok=True)
    path = spool_path(directory, upload.filename)
    written = 0

    try:
        with open(path, "wb") as out:
            while True:
                chunk = await upload.read(SPOOL_CHUNK_BYTES)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLargeError(max_bytes)
                await asyncio.to_thread(out.write, chunk)
    except BaseException:
        discard(path)
        raise

    return path, written


def discard(path: Optional[str]) -> None:
    """Remove a temp file; a missing file or removal error is ignored."""
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug("Could not remove temp file %s: %s", path, e)
