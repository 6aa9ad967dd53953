"""Blob storage adapter for the reference image transport.

When IMAGE_TRANSPORT=reference the normalized image is uploaded to a public
blob store and Gemini fetches it by URL instead of receiving inline base64.
The store contract is minimal: PUT raw bytes with a content type and a bearer
token, get back JSON whose "url" field is the publicly fetchable address.
"""

import asyncio
import hashlib
from typing import Optional

import aiohttp

from src.errors.errors import RequestTimeout, UpstreamFailure
from src.utils.logger import logger

_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}


class BlobStorageClient:
    """Upload image bytes to blob storage and return their public URL."""

    def __init__(self, upload_url: str, token: str, timeout_seconds: float = 15.0) -> None:
        """Initialize BlobStorageClient.

        Args:
            upload_url: Base URL of the store's upload endpoint.
            token: Read-write bearer token.
            timeout_seconds: Total timeout of one upload.

        Raises:
            ValueError: If upload_url or token is empty.
        """
        if not upload_url or not token:
            raise ValueError("BLOB_UPLOAD_URL and BLOB_READ_WRITE_TOKEN are required")

        self.upload_url = upload_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config) -> Optional["BlobStorageClient"]:
        """Build a client when the reference transport is configured, else None."""
        if config.IMAGE_TRANSPORT != "reference":
            return None
        return cls(upload_url=config.BLOB_UPLOAD_URL, token=config.BLOB_READ_WRITE_TOKEN)

    @staticmethod
    def pathname_for(data: bytes, mime_type: str) -> str:
        """Content-addressed object name, so identical uploads map to one blob."""
        digest = hashlib.sha256(data).hexdigest()[:32]
        return f"uploads/{digest}.{_EXTENSIONS.get(mime_type, 'bin')}"

    async def upload(self, data: bytes, mime_type: str) -> str:
        """Upload bytes and return the public URL.

        Raises:
            UpstreamFailure: If the store rejects the upload or returns no URL.
        """
        target = f"{self.upload_url}/{self.pathname_for(data, mime_type)}"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": mime_type,
            "x-content-type": mime_type,
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.put(
                    target,
                    data=data,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    if response.status >= 400:
                        detail = await response.text()
                        raise UpstreamFailure(f"Image upload failed ({response.status}): {detail[:200]}")
                    payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise RequestTimeout("Image upload timed out") from e
        except aiohttp.ClientError as e:
            raise UpstreamFailure(f"Image upload failed: {e}") from e

        url = payload.get("url") if isinstance(payload, dict) else None
        if not isinstance(url, str) or not url.startswith("https://"):
            raise UpstreamFailure("Image upload returned no public URL")

        logger.debug(f"Uploaded {len(data) / 1024:.1f}KB image for reference transport")
        return url
