"""Pinata client for pinning transcoded videos to IPFS.

Single-shot multipart upload; retries are the caller's decision.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from pinworker.core.config import Settings
from pinworker.modules.transcoding.errors import ConfigurationError, UploadError
from pinworker.modules.transcoding.models import PinnedArtifact, TranscodeRequest

logger = logging.getLogger(__name__)

MAX_CLIENT_IP_CHARS = 20
ERROR_BODY_PREVIEW_CHARS = 500


def build_gateway_url(gateway: str, content_id: str) -> str:
    """Join the gateway base URL and a content identifier."""
    return f"{gateway.rstrip('/')}/{content_id}"


def truncate_client_ip(ip: Optional[str]) -> Optional[str]:
    if not ip:
        return None
    return ip[:MAX_CLIENT_IP_CHARS]


def build_pin_metadata(request: TranscodeRequest) -> dict[str, str]:
    """Key-values attached to the pin.

    Optional fields are only included when present.
    """
    metadata = {
        "creator": request.creator,
        "requestId": request.request_id,
    }
    optional = {
        "thumbnail": request.thumbnail_url,
        "platform": request.platform,
        "deviceInfo": request.device_info,
        "clientIP": truncate_client_ip(request.client.ip),
    }
    metadata.update({key: value for key, value in optional.items() if value})
    return metadata


def default_pin_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"transcoded-{now.isoformat(timespec='milliseconds').replace('+00:00', 'Z')}.mp4"


class PinataClient:
    """Uploads a finished artifact to the Pinata pinning API."""

    def __init__(
        self,
        jwt: str,
        api_url: str = "https://api.pinata.cloud/pinning/pinFileToIPFS",
        gateway_url: str = "https://gateway.pinata.cloud/ipfs",
        cid_version: int = 1,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            jwt: Bearer token for the Pinata API
            api_url: pinFileToIPFS endpoint
            gateway_url: Base URL used to build public links
            cid_version: Requested CID version
            timeout: Per-operation timeout in seconds, None for no limit
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.jwt = jwt
        self.api_url = api_url
        self.gateway_url = gateway_url
        self.cid_version = cid_version
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "PinataClient":
        return cls(
            jwt=settings.PINATA_JWT,
            api_url=settings.PINATA_API_URL,
            gateway_url=settings.PINATA_GATEWAY,
            cid_version=settings.PINATA_CID_VERSION,
            timeout=settings.PINATA_TIMEOUT_SECONDS,
        )

    async def pin_file(
        self,
        file_path: str,
        metadata: dict[str, Any],
        name: Optional[str] = None,
    ) -> PinnedArtifact:
        """Stream a file to Pinata and return its content identifier.

        Args:
            file_path: Local artifact to upload
            metadata: Key-values attached to the pin
            name: Display name of the pin

        Returns:
            PinnedArtifact with CID and gateway URL

        Raises:
            ConfigurationError: no JWT configured
            UploadError: service unreachable, non-2xx, or no CID in response
        """
        if not self.jwt:
            raise ConfigurationError("PINATA_JWT not configured on server")

        pin_name = name or default_pin_name()
        data = {
            "pinataMetadata": json.dumps({"name": pin_name, "keyvalues": metadata}),
            "pinataOptions": json.dumps({"cidVersion": self.cid_version}),
        }
        headers = {"Authorization": f"Bearer {self.jwt}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                with open(file_path, "rb") as fh:
                    response = await client.post(
                        self.api_url,
                        data=data,
                        files={"file": (os.path.basename(file_path), fh, "video/mp4")},
                        headers=headers,
                    )
        except httpx.TimeoutException as e:
            raise UploadError(f"Pinata API timeout: {e}") from e
        except httpx.HTTPError as e:
            raise UploadError(f"Pinata API unreachable: {e}") from e

        if not response.is_success:
            raise UploadError(
                f"Pinata API error: {response.status_code} - "
                f"{response.text[:ERROR_BODY_PREVIEW_CHARS]}",
                status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise UploadError("Pinata API returned a non-JSON body", status=response.status_code) from e

        content_id = body.get("IpfsHash") if isinstance(body, dict) else None
        if not content_id or not isinstance(content_id, str):
            raise UploadError("Pinata API response lacks IpfsHash", status=response.status_code)

        logger.info("Pinned artifact", extra={"cid": content_id, "pin_name": pin_name})
        return PinnedArtifact(
            content_id=content_id,
            gateway_url=build_gateway_url(self.gateway_url, content_id),
            metadata=dict(metadata),
        )
